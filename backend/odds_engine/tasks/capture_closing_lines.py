from __future__ import annotations

from odds_engine.database import AsyncSessionLocal
from odds_engine.services.closing_line_service import capture_due_games
from odds_engine.services.snapshot_store import SqlSnapshotStore
from odds_engine.tasks.job_lock import CLOSING_CAPTURE_LOCK_KEY, advisory_lock


async def run_capture_closing_lines() -> dict[str, int]:
    async with advisory_lock(CLOSING_CAPTURE_LOCK_KEY) as acquired:
        if not acquired:
            return {"games": 0, "captured_rows": 0, "games_without_price": 0, "lock_acquired": 0}
        summary = await capture_due_games(SqlSnapshotStore(AsyncSessionLocal))
        summary["lock_acquired"] = 1
        return summary
