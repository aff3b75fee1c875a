from __future__ import annotations

from fastapi import APIRouter, Depends

from odds_engine.schemas.price_check import PriceCheckRequest, PriceCheckResponse
from odds_engine.services.price_check_service import check_price_drift
from odds_engine.services.snapshot_store import SqlSnapshotStore, get_store

router = APIRouter(prefix="/price-check", tags=["price-check"])


@router.post("", response_model=PriceCheckResponse)
async def price_check(payload: PriceCheckRequest, store: SqlSnapshotStore = Depends(get_store)) -> dict:
    legs = [leg.to_leg() for leg in payload.legs]
    return await check_price_drift(store, legs, threshold_bps=payload.threshold_bps)
