from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, Query

from odds_engine.analytics.consensus import calculate_consensus, consensus_to_dict
from odds_engine.analytics.line_movement import line_movement_series, next_best_odds
from odds_engine.config import settings
from odds_engine.errors import InsufficientBooks
from odds_engine.schemas.odds import (
    ConsensusResponse,
    LineMovementPoint,
    MarketKeyIn,
    NextBestOddsResponse,
    QuoteIngestRequest,
    QuoteIngestResponse,
)
from odds_engine.services.odds_normalizer import format_quote_rows, ingest_raw_quotes
from odds_engine.services.snapshot_store import SqlSnapshotStore, get_store

router = APIRouter(prefix="/odds", tags=["odds"])


@router.post("/quotes", response_model=QuoteIngestResponse)
async def ingest_quotes(payload: QuoteIngestRequest, store: SqlSnapshotStore = Depends(get_store)) -> dict:
    return await ingest_raw_quotes(store, payload.quotes)


@router.get("/quotes")
async def recent_quotes(
    market: MarketKeyIn = Depends(),
    hours: int = Query(default=24, ge=1, le=168),
    store: SqlSnapshotStore = Depends(get_store),
) -> list[dict]:
    now = datetime.now(UTC)
    quotes = await store.get_quotes(market.to_key(), now - timedelta(hours=hours), now)
    return format_quote_rows(sorted(quotes, key=lambda q: q.observed_at, reverse=True)[:100])


@router.get("/line-movement", response_model=list[LineMovementPoint])
async def line_movement(
    market: MarketKeyIn = Depends(),
    hours: int = Query(default=24, ge=1, le=168),
    bucket_minutes: int = Query(default=1, ge=1, le=60),
    store: SqlSnapshotStore = Depends(get_store),
) -> list[dict]:
    now = datetime.now(UTC)
    quotes = await store.get_quotes(market.to_key(), now - timedelta(hours=hours), now)
    return line_movement_series(quotes, bucket_minutes)


@router.get("/next-best", response_model=NextBestOddsResponse | None)
async def next_best(
    market: MarketKeyIn = Depends(),
    store: SqlSnapshotStore = Depends(get_store),
) -> dict | None:
    now = datetime.now(UTC)
    lookback = timedelta(minutes=settings.consensus_lookback_minutes)
    quotes = await store.get_quotes(market.to_key(), now - lookback, now)
    return next_best_odds(quotes, now)


@router.get("/consensus", response_model=ConsensusResponse | None)
async def consensus(
    market: MarketKeyIn = Depends(),
    store: SqlSnapshotStore = Depends(get_store),
) -> dict | None:
    key = market.to_key()
    now = datetime.now(UTC)
    lookback = timedelta(minutes=settings.consensus_lookback_minutes)
    quotes = await store.get_market_quotes(key, now - lookback, now)
    try:
        return consensus_to_dict(calculate_consensus(key, quotes, now, lookback=lookback))
    except InsufficientBooks:
        return None
