from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from odds_engine.analytics.clv import clv_record_to_dict, clv_stats_to_dict
from odds_engine.schemas.clv import CLVResponse
from odds_engine.services.clv_service import get_clv, update_pending_clv
from odds_engine.services.snapshot_store import SqlSnapshotStore, get_store

router = APIRouter(prefix="/clv", tags=["clv"])


@router.get("", response_model=CLVResponse)
async def clv(
    user_id: str | None = Query(default=None),
    bet_id: str | None = Query(default=None),
    store: SqlSnapshotStore = Depends(get_store),
) -> dict:
    if not user_id and not bet_id:
        raise HTTPException(status_code=400, detail="user_id or bet_id is required")
    records, stats = await get_clv(store, user_id=user_id, bet_id=bet_id)
    return {"records": [clv_record_to_dict(r) for r in records], "stats": clv_stats_to_dict(stats)}


@router.post("/update")
async def trigger_clv_update(store: SqlSnapshotStore = Depends(get_store)) -> dict[str, int]:
    return await update_pending_clv(store)
