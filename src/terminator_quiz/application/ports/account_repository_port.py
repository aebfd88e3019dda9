"""Port for account persistence used by credential management services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from terminator_quiz.domain.auth.errors import AccountError, ChangePasswordError, RegistrationError


@dataclass(frozen=True)
class AccountRecord:
    """Account persistence model."""

    username: str
    credential_hash: str = field(repr=False)


class DuplicateUsernameError(AccountError):
    """Raised when the store rejects an insert for an existing username."""

    def __init__(self, *, username: str) -> None:
        super().__init__(f"username already exists: {username}")
        self.username = username


class AccountNotFoundError(ChangePasswordError, LookupError):
    """Raised when a target account cannot be found for one update."""

    def __init__(self, *, username: str) -> None:
        super().__init__(f"account not found: {username}")
        self.username = username


class StoreUnavailableError(RegistrationError, ChangePasswordError):
    """Raised when the underlying account store fails to complete an operation."""


class AccountRepositoryPort(Protocol):
    """Account repository contract."""

    async def exists(self, *, username: str) -> bool:
        """Return whether an account exists for the exact username."""

    async def insert(self, *, username: str, credential_hash: str) -> AccountRecord:
        """Insert one account, enforcing username uniqueness atomically."""

    async def fetch(self, *, username: str) -> AccountRecord | None:
        """Return account by exact username or None."""

    async def update_credential(self, *, username: str, credential_hash: str) -> None:
        """Replace the stored credential hash of one existing account."""
