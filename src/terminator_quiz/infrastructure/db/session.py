"""Async SQLAlchemy session factory helpers."""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def create_session_factory(
    database_url: str,
    *,
    timeout_seconds: float | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create a reusable async session factory for the provided database URL."""

    connect_args: dict[str, Any] = {}
    if timeout_seconds is not None and make_url(database_url).get_backend_name() == "sqlite":
        # Bounded wait on a locked database file shared by other terminal sessions.
        connect_args["timeout"] = timeout_seconds

    engine = create_async_engine(database_url, connect_args=connect_args)
    return async_sessionmaker(engine, expire_on_commit=False)
