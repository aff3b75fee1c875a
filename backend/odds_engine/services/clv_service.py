from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from odds_engine.analytics.clv import BetLegRef, CLVRecord, CLVStats, CLVTier, build_clv_record, summarize_clv
from odds_engine.config import settings
from odds_engine.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def unknown_retry_cutoff(now: datetime) -> datetime:
    """Closing rows only appear during the capture grace window, so unknown CLV is retried that long."""
    return now - timedelta(minutes=settings.closing_grace_minutes + settings.closing_capture_interval_minutes)


def _earliest_game_anchor(legs: list[BetLegRef]) -> datetime | None:
    anchors = [leg.game_start or leg.placed_at for leg in legs]
    if any(anchor is None for anchor in anchors):
        return None
    return min(anchors)


async def update_pending_clv(store: SnapshotStore, *, now: datetime | None = None) -> dict[str, int]:
    """Compute CLV for settled legs that have none yet, or a recent unknown one."""
    now = now or datetime.now(UTC)
    legs = await store.get_settled_legs_missing_clv(retry_unknown_since=unknown_retry_cutoff(now))
    if not legs:
        return {"legs": 0, "written": 0, "unknown": 0}

    closing_rows = await store.get_closing_odds(
        list({leg.key for leg in legs}), games_since=_earliest_game_anchor(legs)
    )
    records = [build_clv_record(leg, closing_rows) for leg in legs]
    written = await store.upsert_clv_records(records)
    unknown = sum(1 for r in records if r.tier is CLVTier.UNKNOWN)
    logger.info("clv update: legs=%s written=%s unknown=%s", len(legs), written, unknown)
    return {"legs": len(legs), "written": written, "unknown": unknown}


async def get_clv(
    store: SnapshotStore,
    *,
    user_id: str | None = None,
    bet_id: str | None = None,
) -> tuple[list[CLVRecord], CLVStats]:
    if not user_id and not bet_id:
        raise ValueError("user_id or bet_id is required")
    records = await store.get_clv_records(user_id=user_id, bet_id=bet_id)
    return records, summarize_clv(records)
