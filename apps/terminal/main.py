"""terminal entrypoint: account selection before the quiz session."""

from __future__ import annotations

import asyncio
import getpass
import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from terminator_quiz.application.ports.account_repository_port import (
    AccountNotFoundError,
    AccountRecord,
    StoreUnavailableError,
)
from terminator_quiz.application.ports.password_hasher_port import HashingFailureError
from terminator_quiz.application.services.account_service import (
    AccountService,
    InvalidUsernameError,
    PasswordMismatchError,
    UsernameTakenError,
    WeakPasswordError,
    retry_stage_for,
)
from terminator_quiz.config.settings import Settings, load_settings
from terminator_quiz.domain.auth.errors import RegistrationError
from terminator_quiz.domain.auth.password_policy import PolicyViolation, describe_violation
from terminator_quiz.domain.auth.registration_stage import RegistrationStage, assert_transition
from terminator_quiz.infrastructure.db.account_repository import SqlAlchemyAccountRepository
from terminator_quiz.infrastructure.db.schema import ensure_schema
from terminator_quiz.infrastructure.db.session import create_session_factory
from terminator_quiz.infrastructure.logging import configure_logging
from terminator_quiz.infrastructure.security.password_hasher import BcryptPasswordHasher

BANNER = "=== TERMINATOR ===\nterminal exam practice\n"
MAX_LOGIN_ATTEMPTS = 3
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TerminalIO:
    """Line-oriented input/output used by the interactive account flows."""

    read_line: Callable[[str], str]
    read_secret: Callable[[str], str]
    write_line: Callable[[str], None]


def default_terminal_io() -> TerminalIO:
    """Return stdin/stdout backed IO with hidden password entry."""

    return TerminalIO(read_line=input, read_secret=getpass.getpass, write_line=print)


def build_session_factory(settings: Settings) -> async_sessionmaker[AsyncSession]:
    """Build the async session factory for the configured account store."""

    return create_session_factory(
        settings.database_url,
        timeout_seconds=settings.database_timeout_seconds,
    )


def build_account_service(
    settings: Settings,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AccountService:
    """Build account service with SQLAlchemy and bcrypt dependencies."""

    if session_factory is None:
        session_factory = build_session_factory(settings)
    return AccountService(
        accounts=SqlAlchemyAccountRepository(session_factory),
        password_hasher=BcryptPasswordHasher(rounds=settings.bcrypt_rounds),
    )


def read_confirmed_secret(io: TerminalIO, *, label: str) -> str:
    """Ask for a secret twice until both entries match; secrets are never trimmed."""

    while True:
        first = io.read_secret(f"Enter your {label}: ")
        second = io.read_secret(f"Enter your {label} again: ")
        if first == second:
            return first
        io.write_line(f"{label.capitalize()}s do not match, please try again...")


def format_weak_password(error: WeakPasswordError) -> str:
    """Render every unmet password rule on its own line."""

    lines = ["Password must contain:"]
    lines.extend(
        f"  - {describe_violation(violation)}"
        for violation in PolicyViolation
        if violation in error.violations
    )
    return "\n".join(lines)


def format_registration_error(error: RegistrationError) -> str:
    """Return user-facing wording for a caller-correctable registration failure."""

    if isinstance(error, InvalidUsernameError):
        return "Please enter a valid username..."
    if isinstance(error, UsernameTakenError):
        return "Username already exists; please enter a new one..."
    if isinstance(error, WeakPasswordError):
        return format_weak_password(error)
    return str(error)


def _advance(stage: RegistrationStage, next_stage: RegistrationStage) -> RegistrationStage:
    assert_transition(stage, next_stage)
    return next_stage


async def register_interactively(
    *,
    service: AccountService,
    io: TerminalIO,
    username: str | None = None,
) -> AccountRecord:
    """Collect credentials until one registration succeeds.

    A pre-collected ``username`` skips the first prompt. Every stage change
    goes through ``assert_transition``. Infrastructure failures are re-raised
    unchanged.
    """

    stage = RegistrationStage.COLLECTING_USERNAME
    while True:
        if stage is RegistrationStage.COLLECTING_USERNAME:
            if username is None:
                username = io.read_line("Enter your username: ")
            username = username.strip()
            stage = _advance(stage, RegistrationStage.VALIDATING_UNIQUENESS)

        if stage is RegistrationStage.VALIDATING_UNIQUENESS:
            rejection: RegistrationError | None = None
            if not username:
                rejection = InvalidUsernameError()
            elif await service.username_exists(username=username):
                rejection = UsernameTakenError(username=username)
            if rejection is not None:
                io.write_line(format_registration_error(rejection))
                username = None
                stage = _advance(stage, RegistrationStage.COLLECTING_USERNAME)
                continue
            stage = _advance(stage, RegistrationStage.COLLECTING_PASSWORD)

        password = read_confirmed_secret(io, label="password")
        stage = _advance(stage, RegistrationStage.VALIDATING_POLICY)
        try:
            account = await service.register(username=username or "", password=password)
        except RegistrationError as exc:
            retry_stage = retry_stage_for(exc)
            if retry_stage is None:
                raise
            io.write_line(format_registration_error(exc))
            if not isinstance(exc, WeakPasswordError):
                # Policy passed; the username was claimed before the insert landed.
                stage = _advance(stage, RegistrationStage.HASHING)
                stage = _advance(stage, RegistrationStage.PERSISTING)
                username = None
            stage = _advance(stage, retry_stage)
            continue

        for next_stage in (
            RegistrationStage.HASHING,
            RegistrationStage.PERSISTING,
            RegistrationStage.DONE,
        ):
            stage = _advance(stage, next_stage)
        return account


async def login_interactively(
    *,
    service: AccountService,
    io: TerminalIO,
    username: str,
) -> AccountRecord | None:
    """Ask for the password of an existing account a bounded number of times."""

    for _ in range(MAX_LOGIN_ATTEMPTS):
        password = io.read_secret("Enter your password: ")
        account = await service.authenticate(username=username, password=password)
        if account is not None:
            return account
        io.write_line("Invalid username or password.")
    return None


async def select_account(*, service: AccountService, io: TerminalIO) -> AccountRecord:
    """Log in to an existing account or create a new one."""

    while True:
        username = io.read_line("Enter your username: ").strip()
        if not username:
            io.write_line(format_registration_error(InvalidUsernameError()))
            continue

        if await service.username_exists(username=username):
            account = await login_interactively(service=service, io=io, username=username)
            if account is not None:
                return account
            continue

        io.write_line("Creating a new user...")
        return await register_interactively(service=service, io=io, username=username)


async def change_password_interactively(
    *,
    service: AccountService,
    io: TerminalIO,
    account: AccountRecord,
) -> None:
    """Collect current and new passwords until the change succeeds."""

    while True:
        current = io.read_secret("Enter your current password: ")
        new = read_confirmed_secret(io, label="new password")
        try:
            await service.change_password(
                account=account,
                current_password=current,
                new_password=new,
            )
        except PasswordMismatchError:
            io.write_line("Current password is incorrect, please try again...")
        except WeakPasswordError as exc:
            io.write_line(format_weak_password(exc))
        except AccountNotFoundError:
            io.write_line("Account no longer exists; please log in again...")
            return
        else:
            io.write_line("Password changed.")
            return


async def run_session(*, service: AccountService, io: TerminalIO) -> AccountRecord:
    """Run the account part of one terminal session."""

    io.write_line(BANNER)
    account = await select_account(service=service, io=io)
    io.write_line(f"Welcome, {account.username}!")
    answer = io.read_line("Change your password? (y/N): ").strip().lower()
    if answer in {"y", "yes"}:
        await change_password_interactively(service=service, io=io, account=account)
    return account


async def _run_terminal(*, io: TerminalIO) -> None:
    settings = load_settings()
    configure_logging(level=settings.log_level, log_file=settings.log_file)
    logger.info("terminal_starting database_url=%s", settings.database_url)

    session_factory = build_session_factory(settings)
    await ensure_schema(session_factory)
    service = build_account_service(settings, session_factory=session_factory)
    await run_session(service=service, io=io)


def main() -> None:
    """Run one interactive terminal session."""

    io = default_terminal_io()
    try:
        asyncio.run(_run_terminal(io=io))
    except (EOFError, KeyboardInterrupt):
        io.write_line("")
    except (StoreUnavailableError, HashingFailureError, AccountNotFoundError) as exc:
        io.write_line(f"Unable to continue: {exc}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
