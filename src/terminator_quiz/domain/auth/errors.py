"""Base error families for account operations."""

from __future__ import annotations


class AccountError(Exception):
    """Base class for every failure surfaced by account operations."""


class RegistrationError(AccountError):
    """Failure of one account registration attempt."""


class ChangePasswordError(AccountError):
    """Failure of one password change attempt."""
