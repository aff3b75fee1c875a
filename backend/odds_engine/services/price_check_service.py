from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError

from odds_engine.analytics.price_drift import (
    FETCH_FAILED,
    PriceCheckLeg,
    PriceCheckResult,
    evaluate_drift,
    failed_check,
    price_check_to_dict,
)
from odds_engine.config import settings
from odds_engine.errors import PartialFetchFailure
from odds_engine.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


async def _check_leg(
    store: SnapshotStore,
    leg: PriceCheckLeg,
    *,
    threshold_bps: int,
    recent_limit: int,
    now: datetime,
) -> PriceCheckResult:
    try:
        quotes = await store.get_recent_quotes(leg.key, recent_limit, started_after=now)
    except (PartialFetchFailure, SQLAlchemyError, OSError) as exc:
        logger.warning("price check leg failed: leg_id=%s key=%s error=%s", leg.leg_id, leg.key.as_string(), exc)
        return failed_check(leg, FETCH_FAILED)
    return evaluate_drift(leg, quotes, threshold_bps)


async def check_price_drift(
    store: SnapshotStore,
    legs: list[PriceCheckLeg],
    *,
    threshold_bps: int | None = None,
    recent_limit: int | None = None,
    now: datetime | None = None,
) -> dict:
    """Compare each leg's last-seen price to the best current price. Read-only."""
    threshold_bps = settings.price_drift_threshold_bps if threshold_bps is None else threshold_bps
    recent_limit = recent_limit or settings.price_drift_recent_limit
    now = now or datetime.now(UTC)

    results = await asyncio.gather(
        *(
            _check_leg(store, leg, threshold_bps=threshold_bps, recent_limit=recent_limit, now=now)
            for leg in legs
        )
    )
    any_changed = any(r.changed for r in results)
    failed = sum(1 for r in results if r.error)
    if failed:
        logger.info("price check finished with failures: legs=%s failed=%s", len(results), failed)
    return {
        "status": "changed" if any_changed else "ok",
        "threshold_bps": threshold_bps,
        "any_changed": any_changed,
        "checked_at": now.isoformat(),
        "results": [price_check_to_dict(r) for r in results],
    }
