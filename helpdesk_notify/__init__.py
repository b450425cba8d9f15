"""Help-desk ticket notification routing and templated email delivery."""

__version__ = "0.1.0"
