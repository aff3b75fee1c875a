from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from odds_engine.analytics.edges import edge_pick_to_dict
from odds_engine.analytics.momentum import momentum_pick_to_dict
from odds_engine.config import settings
from odds_engine.schemas.picks import CycleSummary, EdgePickResponse, MomentumPickResponse
from odds_engine.services.pick_cycles import CycleStore, get_cycle_store
from odds_engine.services.pick_service import (
    get_edge_picks,
    get_momentum_picks,
    refresh_edge_picks,
    refresh_momentum_picks,
)
from odds_engine.services.snapshot_store import SqlSnapshotStore, get_store

router = APIRouter(prefix="/picks", tags=["picks"])


def _window_pair(short_minutes: int | None, long_minutes: int | None) -> tuple[int, int]:
    pair = (
        short_minutes if short_minutes is not None else settings.momentum_short_minutes,
        long_minutes if long_minutes is not None else settings.momentum_long_minutes,
    )
    if not 0 < pair[0] < pair[1]:
        raise HTTPException(status_code=422, detail="short_minutes must be positive and less than long_minutes")
    return pair


@router.get("/edges", response_model=list[EdgePickResponse])
async def edge_picks(
    top_n: int | None = Query(default=None, ge=0, le=200),
    store: SqlSnapshotStore = Depends(get_store),
    cycles: CycleStore = Depends(get_cycle_store),
) -> list[dict]:
    return [edge_pick_to_dict(p) for p in await get_edge_picks(store, top_n, cycles=cycles)]


@router.post("/edges/refresh", response_model=CycleSummary)
async def trigger_edge_refresh(
    store: SqlSnapshotStore = Depends(get_store),
    cycles: CycleStore = Depends(get_cycle_store),
) -> dict:
    cycle = await refresh_edge_picks(store, cycles=cycles)
    return {"cycle_id": cycle.cycle_id, "kind": cycle.kind, "picks": len(cycle.picks), "annotated": cycle.annotated}


@router.get("/momentum", response_model=list[MomentumPickResponse])
async def momentum_picks(
    short_minutes: int | None = Query(default=None, ge=1),
    long_minutes: int | None = Query(default=None, ge=2),
    top_n: int | None = Query(default=None, ge=0, le=200),
    store: SqlSnapshotStore = Depends(get_store),
    cycles: CycleStore = Depends(get_cycle_store),
) -> list[dict]:
    window_pair = _window_pair(short_minutes, long_minutes)
    return [momentum_pick_to_dict(p) for p in await get_momentum_picks(store, window_pair, top_n, cycles=cycles)]


@router.post("/momentum/refresh", response_model=CycleSummary)
async def trigger_momentum_refresh(
    short_minutes: int | None = Query(default=None, ge=1),
    long_minutes: int | None = Query(default=None, ge=2),
    store: SqlSnapshotStore = Depends(get_store),
    cycles: CycleStore = Depends(get_cycle_store),
) -> dict:
    cycle = await refresh_momentum_picks(store, _window_pair(short_minutes, long_minutes), cycles=cycles)
    return {"cycle_id": cycle.cycle_id, "kind": cycle.kind, "picks": len(cycle.picks), "annotated": cycle.annotated}
