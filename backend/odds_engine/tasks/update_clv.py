from __future__ import annotations

from odds_engine.database import AsyncSessionLocal
from odds_engine.services.clv_service import update_pending_clv
from odds_engine.services.snapshot_store import SqlSnapshotStore
from odds_engine.tasks.job_lock import CLV_UPDATE_LOCK_KEY, advisory_lock


async def run_update_clv() -> dict[str, int]:
    async with advisory_lock(CLV_UPDATE_LOCK_KEY) as acquired:
        if not acquired:
            return {"legs": 0, "written": 0, "unknown": 0, "lock_acquired": 0}
        summary = await update_pending_clv(SqlSnapshotStore(AsyncSessionLocal))
        summary["lock_acquired"] = 1
        return summary
