"""THEUNOiA student freelance marketplace."""

__version__ = "0.4.0"
