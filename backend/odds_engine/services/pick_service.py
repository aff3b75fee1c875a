from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import OperationalError

from odds_engine.analytics.consensus import build_consensus_snapshots
from odds_engine.analytics.edges import DEFAULT_EDGE_RATIONALE, EdgePick, edge_summary, rank_edges
from odds_engine.analytics.market import Quote
from odds_engine.analytics.momentum import (
    DEFAULT_MOMENTUM_RATIONALE,
    MomentumPick,
    momentum_summary,
    rank_momentum,
)
from odds_engine.config import settings
from odds_engine.errors import SnapshotStoreUnavailable
from odds_engine.services.pick_cycles import EDGE_KIND, MOMENTUM_KIND, CycleStore, PickCycle, cycle_store
from odds_engine.services.rationale import RationaleAnnotator, annotator
from odds_engine.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def default_window_pair() -> tuple[int, int]:
    return settings.momentum_short_minutes, settings.momentum_long_minutes


def _within_horizon(quotes: list[Quote], now: datetime) -> list[Quote]:
    horizon = now + timedelta(hours=settings.refresh_horizon_hours)
    return [q for q in quotes if q.game_start is None or q.game_start <= horizon]


async def _load_upcoming(store: SnapshotStore, start: datetime, now: datetime) -> list[Quote]:
    try:
        quotes = await store.get_upcoming_quotes(start, now)
    except (OperationalError, OSError) as exc:
        raise SnapshotStoreUnavailable(f"could not read quotes: {exc}") from exc
    return _within_horizon(quotes, now)


async def refresh_edge_picks(
    store: SnapshotStore,
    *,
    now: datetime | None = None,
    annotate: bool = True,
    rationale: RationaleAnnotator | None = None,
    cycles: CycleStore | None = None,
) -> PickCycle:
    """Recompute the edge cycle, publish it, then republish it annotated under the same timestamp."""
    now = now or datetime.now(UTC)
    cycles = cycles or cycle_store
    lookback = timedelta(minutes=settings.consensus_lookback_minutes)

    quotes = await _load_upcoming(store, now - lookback, now)
    snapshots = build_consensus_snapshots(quotes, now, lookback=lookback, computed_at=now)
    # Full ranking is kept; presentation truncates.
    picks = rank_edges(snapshots, top_n=len(snapshots))
    cycle = await cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=now, picks=tuple(picks)))
    logger.info(
        "edge cycle published: cycle_id=%s quotes=%s snapshots=%s picks=%s",
        cycle.cycle_id,
        len(quotes),
        len(snapshots),
        len(picks),
    )
    if not annotate or not picks:
        return cycle
    return await _annotate_cycle(cycle, settings.edge_top_n, rationale or annotator, cycles)


async def refresh_momentum_picks(
    store: SnapshotStore,
    window_pair: tuple[int, int] | None = None,
    *,
    now: datetime | None = None,
    annotate: bool = True,
    rationale: RationaleAnnotator | None = None,
    cycles: CycleStore | None = None,
) -> PickCycle:
    now = now or datetime.now(UTC)
    cycles = cycles or cycle_store
    window_pair = window_pair or default_window_pair()
    lookback = timedelta(minutes=settings.consensus_lookback_minutes)

    start = now - timedelta(minutes=window_pair[1]) - lookback
    quotes = await _load_upcoming(store, start, now)
    picks = rank_momentum(quotes, now, window_pair=window_pair, top_n=len(quotes), lookback=lookback)
    cycle = await cycles.publish(PickCycle(kind=MOMENTUM_KIND, window_pair=window_pair, cycle_at=now, picks=tuple(picks)))
    logger.info(
        "momentum cycle published: cycle_id=%s quotes=%s picks=%s lagging=%s",
        cycle.cycle_id,
        len(quotes),
        len(picks),
        sum(1 for p in picks if p.is_lagging),
    )
    if not annotate or not picks:
        return cycle
    return await _annotate_cycle(cycle, settings.momentum_top_n, rationale or annotator, cycles)


async def _annotate_cycle(
    cycle: PickCycle,
    head_size: int,
    rationale: RationaleAnnotator,
    cycles: CycleStore,
) -> PickCycle:
    head, tail = list(cycle.picks[:head_size]), list(cycle.picks[head_size:])
    if cycle.kind == EDGE_KIND:
        annotated = await rationale.annotate_picks(head, edge_summary, DEFAULT_EDGE_RATIONALE)
    else:
        annotated = await rationale.annotate_picks(head, momentum_summary, DEFAULT_MOMENTUM_RATIONALE)

    current = await cycles.latest(cycle.kind, cycle.window_pair)
    if current is not None and current.cycle_at > cycle.cycle_at:
        logger.info("annotation finished after a newer cycle: cycle_id=%s newer=%s", cycle.cycle_id, current.cycle_id)
    return await cycles.publish(
        PickCycle(
            kind=cycle.kind,
            window_pair=cycle.window_pair,
            cycle_at=cycle.cycle_at,
            picks=tuple(annotated + tail),
            annotated=True,
        )
    )


def _is_stale(cycle: PickCycle | None, refresh_interval_minutes: int) -> bool:
    """Missing, or older than two refresh intervals (the worker has missed a run)."""
    if cycle is None:
        return True
    return cycle.cycle_at < datetime.now(UTC) - timedelta(minutes=2 * refresh_interval_minutes)


async def get_edge_picks(
    store: SnapshotStore,
    top_n: int | None = None,
    *,
    cycles: CycleStore | None = None,
) -> list[EdgePick]:
    """Newest published edge picks, read from the shared cycle store.

    Computed on demand (without rationale) only when the worker has not published recently.
    """
    cycles = cycles or cycle_store
    top_n = settings.edge_top_n if top_n is None else top_n
    cycle = await cycles.latest(EDGE_KIND)
    if _is_stale(cycle, settings.edge_refresh_interval_minutes):
        cycle = await refresh_edge_picks(store, annotate=False, cycles=cycles)
    return list(cycle.picks[: max(0, top_n)])


async def get_momentum_picks(
    store: SnapshotStore,
    window_pair: tuple[int, int] | None = None,
    top_n: int | None = None,
    *,
    cycles: CycleStore | None = None,
) -> list[MomentumPick]:
    cycles = cycles or cycle_store
    window_pair = window_pair or default_window_pair()
    top_n = settings.momentum_top_n if top_n is None else top_n
    cycle = await cycles.latest(MOMENTUM_KIND, window_pair)
    if _is_stale(cycle, settings.momentum_refresh_interval_minutes):
        cycle = await refresh_momentum_picks(store, window_pair, annotate=False, cycles=cycles)
    return list(cycle.picks[: max(0, top_n)])
