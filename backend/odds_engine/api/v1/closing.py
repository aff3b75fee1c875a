from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from odds_engine.errors import NoClosingPriceFound
from odds_engine.schemas.odds import GameRefIn
from odds_engine.services.closing_line_service import capture_closing_for_game
from odds_engine.services.snapshot_store import SqlSnapshotStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/closing", tags=["closing"])


@router.post("/capture")
async def capture_closing(payload: GameRefIn, store: SqlSnapshotStore = Depends(get_store)) -> dict[str, int | str]:
    try:
        written = await capture_closing_for_game(store, payload.to_game())
    except NoClosingPriceFound as exc:
        logger.warning("closing capture requested with no qualifying quotes: error=%s", exc)
        return {"status": "no_closing_price", "captured_rows": 0}
    return {"status": "ok", "captured_rows": written}
