"""Startup helper that ensures the account table exists."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from terminator_quiz.infrastructure.db.metadata import metadata

logger = logging.getLogger(__name__)


async def ensure_schema(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Create missing tables; existing tables are left untouched."""

    async with session_factory() as session:
        connection = await session.connection()
        await connection.run_sync(metadata.create_all)
        await session.commit()

    logger.info("account_schema_ready tables=%s", ",".join(sorted(metadata.tables)))
