from __future__ import annotations

from odds_engine.database import AsyncSessionLocal
from odds_engine.services.pick_service import refresh_edge_picks, refresh_momentum_picks
from odds_engine.services.snapshot_store import SqlSnapshotStore


async def run_refresh_edge_picks() -> dict[str, int | str]:
    cycle = await refresh_edge_picks(SqlSnapshotStore(AsyncSessionLocal))
    return {"cycle_id": cycle.cycle_id, "picks": len(cycle.picks), "annotated": int(cycle.annotated)}


async def run_refresh_momentum_picks() -> dict[str, int | str]:
    cycle = await refresh_momentum_picks(SqlSnapshotStore(AsyncSessionLocal))
    return {"cycle_id": cycle.cycle_id, "picks": len(cycle.picks), "annotated": int(cycle.annotated)}
