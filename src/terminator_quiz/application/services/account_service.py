"""Application service for account registration, login and password change."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from terminator_quiz.application.ports.account_repository_port import (
    AccountNotFoundError,
    AccountRecord,
    AccountRepositoryPort,
    DuplicateUsernameError,
)
from terminator_quiz.application.ports.password_hasher_port import PasswordHasherPort
from terminator_quiz.domain.auth.credentials import normalize_username
from terminator_quiz.domain.auth.errors import ChangePasswordError, RegistrationError
from terminator_quiz.domain.auth.password_policy import PolicyViolation, policy_violations
from terminator_quiz.domain.auth.registration_stage import RegistrationStage

logger = logging.getLogger(__name__)


class InvalidUsernameError(RegistrationError, ValueError):
    """Raised when a registration username is blank."""

    def __init__(self) -> None:
        super().__init__("username cannot be blank")


class UsernameTakenError(RegistrationError):
    """Raised when the requested username already belongs to an account."""

    def __init__(self, *, username: str) -> None:
        super().__init__(f"username already taken: {username}")
        self.username = username


class WeakPasswordError(RegistrationError, ChangePasswordError):
    """Raised when a candidate password fails one or more policy rules."""

    def __init__(self, *, violations: Iterable[PolicyViolation]) -> None:
        self.violations = frozenset(violations)
        names = ", ".join(sorted(violation.value for violation in self.violations))
        super().__init__(f"password does not satisfy policy: {names}")


class PasswordMismatchError(ChangePasswordError):
    """Raised when the supplied current password does not match the stored hash."""

    def __init__(self) -> None:
        super().__init__("current password does not match")


def retry_stage_for(error: RegistrationError) -> RegistrationStage | None:
    """Return the collection stage a registration flow resumes at, if any.

    Infrastructure failures end the flow and return None.
    """

    if isinstance(error, (InvalidUsernameError, UsernameTakenError)):
        return RegistrationStage.COLLECTING_USERNAME
    if isinstance(error, WeakPasswordError):
        return RegistrationStage.COLLECTING_PASSWORD
    return None


class AccountService:
    """Expose credential management use-cases over the account store."""

    def __init__(
        self,
        *,
        accounts: AccountRepositoryPort,
        password_hasher: PasswordHasherPort,
    ) -> None:
        self._accounts = accounts
        self._password_hasher = password_hasher

    async def register(self, *, username: str, password: str) -> AccountRecord:
        """Create one account from a unique username and a policy-approved password."""

        try:
            normalized_username = normalize_username(username=username)
        except ValueError as exc:
            raise InvalidUsernameError() from exc

        if await self._accounts.exists(username=normalized_username):
            logger.info("account_register_rejected reason=username_taken")
            raise UsernameTakenError(username=normalized_username)

        self._require_acceptable_password(password)
        credential_hash = self._password_hasher.hash_password(password)

        try:
            account = await self._accounts.insert(
                username=normalized_username,
                credential_hash=credential_hash,
            )
        except DuplicateUsernameError as exc:
            # Lost a race with another session between the exists check and insert.
            logger.info("account_register_rejected reason=concurrent_insert")
            raise UsernameTakenError(username=normalized_username) from exc

        logger.info("account_registered username=%s", account.username)
        return account

    async def username_exists(self, *, username: str) -> bool:
        """Return whether a username is already registered."""

        lookup_username = _lookup_username(username)
        if lookup_username is None:
            return False
        return await self._accounts.exists(username=lookup_username)

    async def authenticate(self, *, username: str, password: str) -> AccountRecord | None:
        """Return the account when credentials match, else None.

        Unknown usernames and wrong passwords both yield None so callers cannot
        tell them apart.
        """

        lookup_username = _lookup_username(username)
        account = (
            None
            if lookup_username is None
            else await self._accounts.fetch(username=lookup_username)
        )
        if account is None:
            logger.info("account_login_failed")
            return None

        is_valid = self._password_hasher.verify_password(
            password=password,
            password_hash=account.credential_hash,
        )
        if not is_valid:
            logger.info("account_login_failed")
            return None

        logger.info("account_login_success username=%s", account.username)
        return account

    async def change_password(
        self,
        *,
        account: AccountRecord,
        current_password: str,
        new_password: str,
    ) -> None:
        """Replace the stored hash after verifying the current password."""

        stored = await self._accounts.fetch(username=account.username)
        if stored is None:
            raise AccountNotFoundError(username=account.username)

        is_valid = self._password_hasher.verify_password(
            password=current_password,
            password_hash=stored.credential_hash,
        )
        if not is_valid:
            logger.info("account_password_change_rejected reason=password_mismatch")
            raise PasswordMismatchError()

        self._require_acceptable_password(new_password)
        credential_hash = self._password_hasher.hash_password(new_password)
        await self._accounts.update_credential(
            username=stored.username,
            credential_hash=credential_hash,
        )
        logger.info("account_password_changed username=%s", stored.username)

    def policy_violations(self, password: str) -> frozenset[PolicyViolation]:
        """Return unmet password rules so callers can render specific feedback."""

        return policy_violations(password)

    def _require_acceptable_password(self, password: str) -> None:
        """Reject passwords that fail any policy rule."""

        violations = policy_violations(password)
        if violations:
            raise WeakPasswordError(violations=violations)


def _lookup_username(username: str) -> str | None:
    """Normalize a username for lookups; blank input matches no account."""

    try:
        return normalize_username(username=username)
    except ValueError:
        return None
