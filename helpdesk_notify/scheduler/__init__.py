"""Background execution of notification jobs."""

from .service import BackgroundDispatcher

__all__ = [
    "BackgroundDispatcher",
]
