from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import APIRouter, Depends

from odds_engine.database import get_session
from odds_engine.models.odds_quote import OddsQuote
from odds_engine.services.pick_cycles import CycleStore, get_cycle_store

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/cycles")
async def cycles(cycle_store: CycleStore = Depends(get_cycle_store)) -> list[dict]:
    return await cycle_store.get_status()


@router.get("/health")
async def health(session: AsyncSession = Depends(get_session)) -> dict[str, str | int | None]:
    quote_count = int((await session.scalar(select(func.count(OddsQuote.id)))) or 0)
    last_observed_at = await session.scalar(select(func.max(OddsQuote.observed_at)))

    return {
        "status": "ok",
        "quote_count": quote_count,
        "last_observed_at": last_observed_at.isoformat() if last_observed_at else None,
    }
