"""SQLAlchemy adapter for account persistence."""

from __future__ import annotations

import logging
from typing import cast

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from terminator_quiz.application.ports.account_repository_port import (
    AccountNotFoundError,
    AccountRecord,
    AccountRepositoryPort,
    DuplicateUsernameError,
    StoreUnavailableError,
)
from terminator_quiz.infrastructure.db.metadata import accounts

logger = logging.getLogger(__name__)


class SqlAlchemyAccountRepository(AccountRepositoryPort):
    """Account repository backed by SQLAlchemy async sessions.

    Each call opens its own short-lived session; uniqueness is enforced by the
    table primary key so concurrent inserts from other processes are rejected
    atomically.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def exists(self, *, username: str) -> bool:
        """Return whether an account exists for the exact username."""

        statement = sa.select(sa.literal(1)).where(accounts.c.username == username).limit(1)

        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
        except SQLAlchemyError as exc:
            raise _store_unavailable("exists", exc) from exc

        return result.first() is not None

    async def insert(self, *, username: str, credential_hash: str) -> AccountRecord:
        """Insert one account, enforcing username uniqueness atomically."""

        statement = sa.insert(accounts).values(
            username=username,
            credential_hash=credential_hash,
        )

        try:
            async with self._session_factory() as session:
                try:
                    await session.execute(statement)
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    raise DuplicateUsernameError(username=username) from exc
        except SQLAlchemyError as exc:
            raise _store_unavailable("insert", exc) from exc

        return AccountRecord(username=username, credential_hash=credential_hash)

    async def fetch(self, *, username: str) -> AccountRecord | None:
        """Return account by exact username or None."""

        statement = sa.select(
            accounts.c.username,
            accounts.c.credential_hash,
        ).where(accounts.c.username == username).limit(1)

        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
        except SQLAlchemyError as exc:
            raise _store_unavailable("fetch", exc) from exc

        row = result.mappings().first()
        if row is None:
            return None
        return _to_account_record(row)

    async def update_credential(self, *, username: str, credential_hash: str) -> None:
        """Replace the stored credential hash of one existing account."""

        statement = (
            sa.update(accounts)
            .where(accounts.c.username == username)
            .values(
                credential_hash=credential_hash,
                updated_at=sa.func.current_timestamp(),
            )
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                await session.commit()
        except SQLAlchemyError as exc:
            raise _store_unavailable("update_credential", exc) from exc

        if result.rowcount == 0:
            raise AccountNotFoundError(username=username)


def _store_unavailable(operation: str, exc: SQLAlchemyError) -> StoreUnavailableError:
    logger.error("account_store_failed operation=%s error=%s", operation, type(exc).__name__)
    return StoreUnavailableError(f"account store failed during {operation}")


def _to_account_record(row: sa.RowMapping) -> AccountRecord:
    return AccountRecord(
        username=cast(str, row["username"]),
        credential_hash=cast(str, row["credential_hash"]),
    )
