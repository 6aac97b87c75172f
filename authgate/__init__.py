"""Authgate: credential verification, bearer sessions and email verification."""

__version__ = "1.0.0"
