from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text

from odds_engine.database import AsyncSessionLocal

CLOSING_CAPTURE_LOCK_KEY = 927413
CLV_UPDATE_LOCK_KEY = 927414


@asynccontextmanager
async def advisory_lock(key: int) -> AsyncIterator[bool]:
    """Yield whether this worker owns the job. Only PostgreSQL takes a real lock."""
    async with AsyncSessionLocal() as session:
        if session.bind.dialect.name != "postgresql":
            yield True
            return
        acquired = bool(await session.scalar(text("SELECT pg_try_advisory_lock(:key)"), {"key": key}))
        try:
            yield acquired
        finally:
            if acquired:
                await session.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
                await session.commit()
