"""Test helper utilities for helpdesk-notify tests."""

from .directory import (
    DEFAULT_USERS,
    StaticDirectory,
    StaticPolicyStore,
    make_ticket,
    make_user,
    seed_users,
)

__all__ = [
    "DEFAULT_USERS",
    "StaticDirectory",
    "StaticPolicyStore",
    "make_ticket",
    "make_user",
    "seed_users",
]
