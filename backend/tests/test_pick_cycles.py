import asyncio
import importlib.util
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from odds_engine.analytics.edges import DEFAULT_EDGE_RATIONALE, EdgePick
from odds_engine.analytics.market import MarketKey, Quote
from odds_engine.database import Base
from odds_engine.services.pick_cycles import EDGE_KIND, MOMENTUM_KIND, PickCycle, PickCycleStore, SqlPickCycleStore
from odds_engine.services.pick_service import get_edge_picks, refresh_edge_picks, refresh_momentum_picks
from odds_engine.services.rationale import RationaleAnnotator

T0 = datetime(2026, 3, 1, 18, 0, tzinfo=UTC)
HOME = MarketKey("basketball", "nba", "boston celtics", "miami heat", "h2h", "boston celtics")


def test_latest_cycle_wins_and_history_is_bounded() -> None:
    cycles = PickCycleStore(history_size=2)
    for minute in range(4):
        asyncio.run(cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=T0 + timedelta(minutes=minute), picks=(minute,))))

    assert asyncio.run(cycles.latest(EDGE_KIND)).picks == (3,)
    assert asyncio.run(cycles.get_status())[0]["retained_cycles"] == 2


def test_republishing_same_timestamp_replaces_cycle() -> None:
    cycles = PickCycleStore()
    asyncio.run(cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=T0, picks=("numeric",))))
    asyncio.run(cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=T0, picks=("annotated",), annotated=True)))

    latest = asyncio.run(cycles.latest(EDGE_KIND))
    assert latest.picks == ("annotated",)
    assert latest.annotated is True
    assert asyncio.run(cycles.get_status())[0]["retained_cycles"] == 1


def test_numeric_republish_keeps_annotated_cycle() -> None:
    cycles = PickCycleStore()
    asyncio.run(cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=T0, picks=("annotated",), annotated=True)))
    kept = asyncio.run(cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=T0, picks=("numeric",))))

    assert kept.picks == ("annotated",)
    assert asyncio.run(cycles.latest(EDGE_KIND)).annotated is True


def test_window_pairs_are_independent_slots() -> None:
    cycles = PickCycleStore()
    asyncio.run(cycles.publish(PickCycle(kind=MOMENTUM_KIND, window_pair=(15, 60), cycle_at=T0, picks=("a",))))
    asyncio.run(cycles.publish(PickCycle(kind=MOMENTUM_KIND, window_pair=(30, 120), cycle_at=T0, picks=("b",))))

    assert asyncio.run(cycles.latest(MOMENTUM_KIND, (15, 60))).picks == ("a",)
    assert asyncio.run(cycles.latest(MOMENTUM_KIND, (30, 120))).picks == ("b",)
    assert asyncio.run(cycles.latest(MOMENTUM_KIND, (5, 10))) is None
    assert asyncio.run(cycles.latest(EDGE_KIND)) is None


class _QuoteStore:
    def __init__(self, quotes) -> None:
        self.quotes = quotes

    async def get_upcoming_quotes(self, start, end):
        return [
            q
            for q in self.quotes
            if start <= q.observed_at <= end and (q.game_start is None or q.game_start > end)
        ]


class _FailingClient:
    async def annotate(self, summary):
        raise ValueError("no content")


def _quote(book: str, odds: float, observed_at: datetime, game_start: datetime | None = None) -> Quote:
    return Quote(key=HOME, book=book, decimal_odds=odds, implied_prob=1 / odds, observed_at=observed_at, game_start=game_start)


def test_refresh_edge_picks_publishes_annotated_cycle_under_same_timestamp() -> None:
    cycles = PickCycleStore()
    store = _QuoteStore([_quote(book, odds, T0 - timedelta(minutes=2)) for book, odds in (("a", 1.91), ("b", 1.95), ("c", 2.05))])
    annotator = RationaleAnnotator(_FailingClient(), timeout_seconds=1.0, max_concurrency=2, cache_ttl_seconds=60)

    cycle = asyncio.run(refresh_edge_picks(store, now=T0, rationale=annotator, cycles=cycles))

    assert cycle.cycle_at == T0
    assert cycle.annotated is True
    assert [p.best_book for p in cycle.picks] == ["c"]
    assert cycle.picks[0].rationale == DEFAULT_EDGE_RATIONALE
    assert asyncio.run(cycles.get_status())[0]["retained_cycles"] == 1


def test_refresh_skips_started_and_far_future_games() -> None:
    cycles = PickCycleStore()
    store = _QuoteStore(
        [
            _quote("a", 2.05, T0 - timedelta(minutes=2), game_start=T0 - timedelta(minutes=1)),
            _quote("b", 2.05, T0 - timedelta(minutes=2), game_start=T0 + timedelta(days=30)),
        ]
    )

    cycle = asyncio.run(refresh_edge_picks(store, now=T0, annotate=False, cycles=cycles))

    assert cycle.picks == ()


def test_refresh_momentum_picks_keys_cycle_by_window_pair() -> None:
    cycles = PickCycleStore()
    store = _QuoteStore(
        [
            _quote("a", 1 / 0.44, T0 - timedelta(minutes=70)),
            _quote("a", 1 / 0.48, T0 - timedelta(minutes=20)),
            _quote("a", 1 / 0.50, T0 - timedelta(minutes=1)),
        ]
    )

    cycle = asyncio.run(refresh_momentum_picks(store, (15, 60), now=T0, annotate=False, cycles=cycles))

    assert cycle.window_pair == (15, 60)
    assert len(cycle.picks) == 1
    assert asyncio.run(cycles.latest(MOMENTUM_KIND, (15, 60))) is cycle


def test_get_edge_picks_serves_fresh_cycle_without_recomputing() -> None:
    cycles = PickCycleStore()
    now = datetime.now(UTC)
    asyncio.run(cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=now, picks=("p1", "p2", "p3"))))

    class _ExplodingStore:
        async def get_upcoming_quotes(self, start, end):
            raise AssertionError("fresh cycle should be served")

    assert asyncio.run(get_edge_picks(_ExplodingStore(), top_n=2, cycles=cycles)) == ["p1", "p2"]


def test_get_edge_picks_computes_on_demand_when_no_cycle() -> None:
    cycles = PickCycleStore()
    now = datetime.now(UTC)
    store = _QuoteStore([_quote(book, odds, now - timedelta(minutes=2)) for book, odds in (("a", 1.91), ("c", 2.05))])

    picks = asyncio.run(get_edge_picks(store, top_n=5, cycles=cycles))

    assert [p.best_book for p in picks] == ["c"]
    assert picks[0].rationale is None
    assert asyncio.run(cycles.latest(EDGE_KIND)) is not None


class _WorkerClient:
    async def annotate(self, summary):
        return "worker rationale"


class _ExplodingStore:
    async def get_upcoming_quotes(self, start, end):
        raise AssertionError("published cycle should be served")


def _sql_cycles(engine, history_size: int = 5) -> SqlPickCycleStore:
    return SqlPickCycleStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False), history_size)


def _edge_pick(computed_at: datetime) -> EdgePick:
    return EdgePick(
        key=HOME,
        best_book="c",
        best_decimal_odds=2.05,
        consensus_prob=0.5,
        consensus_decimal_odds=2.0,
        edge_percent=2.5,
        edge_prob=0.0122,
        edge_bps=250,
        confidence=72.5,
        book_count=3,
        low_confidence=False,
        computed_at=computed_at,
    )


def test_cycle_published_by_worker_reaches_separate_reader(tmp_path) -> None:
    if importlib.util.find_spec("aiosqlite") is None:
        pytest.skip("aiosqlite not available in this environment")
    asyncio.run(_run_worker_to_reader(f"sqlite+aiosqlite:///{tmp_path / 'cycles.db'}"))


async def _run_worker_to_reader(url: str) -> None:
    worker_engine = create_async_engine(url)
    reader_engine = create_async_engine(url)
    async with worker_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    now = datetime.now(UTC)
    store = _QuoteStore([_quote(book, odds, now - timedelta(minutes=2)) for book, odds in (("a", 1.91), ("b", 1.95), ("c", 2.05))])
    annotator = RationaleAnnotator(_WorkerClient(), timeout_seconds=1.0, max_concurrency=2, cache_ttl_seconds=60)

    published = await refresh_edge_picks(store, now=now, rationale=annotator, cycles=_sql_cycles(worker_engine))
    picks = await get_edge_picks(_ExplodingStore(), top_n=5, cycles=_sql_cycles(reader_engine))

    assert published.annotated is True
    assert [p.best_book for p in picks] == ["c"]
    assert [p.rationale for p in picks] == ["worker rationale"]
    assert picks[0].key == HOME
    await worker_engine.dispose()
    await reader_engine.dispose()


def test_sql_cycles_keep_bounded_history_and_annotated_republish() -> None:
    if importlib.util.find_spec("aiosqlite") is None:
        pytest.skip("aiosqlite not available in this environment")
    asyncio.run(_run_sql_history())


async def _run_sql_history() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    cycles = _sql_cycles(engine, history_size=2)

    for minute in range(4):
        await cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=T0 + timedelta(minutes=minute), picks=()))
    last = T0 + timedelta(minutes=3)
    await cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=last, picks=(_edge_pick(last),), annotated=True))
    kept = await cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=last, picks=()))

    assert kept.annotated is True
    assert kept.picks == (_edge_pick(last),)
    status = await cycles.get_status()
    assert status[0]["retained_cycles"] == 2
    assert status[0]["annotated"] is True
    latest = await cycles.latest(EDGE_KIND)
    assert latest.cycle_at == last
    assert await cycles.latest(MOMENTUM_KIND, (15, 60)) is None
    await engine.dispose()
