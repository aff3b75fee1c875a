import asyncio
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from odds_engine.analytics.edges import EdgePick
from odds_engine.analytics.market import MarketKey, Quote
from odds_engine.database import get_session
from odds_engine.main import app
from odds_engine.services.pick_cycles import EDGE_KIND, PickCycle, PickCycleStore, get_cycle_store
from odds_engine.services.snapshot_store import get_store

KEY_PARAMS = {
    "sport": "basketball",
    "league": "nba",
    "team1": "boston celtics",
    "team2": "miami heat",
    "market": "h2h",
    "selection": "boston celtics",
}
KEY = MarketKey(**KEY_PARAMS)


class _FakeStore:
    def __init__(self, quotes=None, fail=False) -> None:
        self.quotes = quotes or []
        self.fail = fail
        self.appended = []

    async def append_quotes(self, quotes):
        self.appended.extend(quotes)
        return len(quotes)

    async def get_quotes(self, key, start, end):
        return [q for q in self.quotes if q.key == key and start <= q.observed_at <= end]

    async def get_market_quotes(self, key, start, end):
        return [q for q in self.quotes if q.key.market_group == key.market_group and start <= q.observed_at <= end]

    async def get_upcoming_quotes(self, start, end):
        if self.fail:
            raise OperationalError("SELECT", {}, Exception("connection refused"))
        return [q for q in self.quotes if start <= q.observed_at <= end]

    async def get_recent_quotes(self, key, limit, started_after=None):
        return [q for q in self.quotes if q.key == key][:limit]


def _recent_quotes() -> list[Quote]:
    now = datetime.now(UTC)
    return [
        Quote(key=KEY, book=book, decimal_odds=odds, implied_prob=1 / odds, observed_at=now - timedelta(minutes=2))
        for book, odds in (("a", 1.91), ("b", 1.95), ("c", 2.05))
    ]


@pytest.fixture()
def client_with_store():
    def _make(store, cycles=None):
        cycles = cycles or PickCycleStore()
        app.dependency_overrides[get_store] = lambda: store
        app.dependency_overrides[get_cycle_store] = lambda: cycles
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


def test_ingest_reports_rejected_rows(client_with_store) -> None:
    store = _FakeStore()
    client = client_with_store(store)
    row = {**KEY_PARAMS, "book": "a", "decimal_odds": 1.91, "observed_at": "2026-03-01T18:00:00Z"}

    response = client.post("/api/v1/odds/quotes", json={"quotes": [row, {**row, "decimal_odds": 0.5}]})

    assert response.status_code == 200
    assert response.json()["inserted"] == 1
    assert response.json()["rejected"][0]["index"] == 1
    assert len(store.appended) == 1


def test_edges_endpoint_returns_ranked_picks(client_with_store) -> None:
    client = client_with_store(_FakeStore(_recent_quotes()))

    response = client.get("/api/v1/picks/edges", params={"top_n": 5})

    assert response.status_code == 200
    body = response.json()
    assert len(body) == 1
    assert body[0]["best_book"] == "c"
    assert 70 <= body[0]["confidence"] <= 95
    assert body[0]["key"]["selection"] == "boston celtics"


def test_momentum_rejects_inverted_windows(client_with_store) -> None:
    client = client_with_store(_FakeStore())

    response = client.get("/api/v1/picks/momentum", params={"short_minutes": 60, "long_minutes": 15})

    assert response.status_code == 422


def test_empty_store_renders_no_signal(client_with_store) -> None:
    client = client_with_store(_FakeStore())

    assert client.get("/api/v1/picks/momentum").json() == []
    assert client.get("/api/v1/odds/consensus", params=KEY_PARAMS).json() is None


def test_consensus_and_next_best_endpoints(client_with_store) -> None:
    client = client_with_store(_FakeStore(_recent_quotes()))

    consensus = client.get("/api/v1/odds/consensus", params=KEY_PARAMS).json()
    next_best = client.get("/api/v1/odds/next-best", params=KEY_PARAMS).json()

    assert consensus["book_count"] == 3
    assert consensus["best_book"] == "c"
    assert next_best["best_book"] == "c"
    assert next_best["next_best_book"] == "b"


def test_price_check_contract(client_with_store) -> None:
    client = client_with_store(_FakeStore(_recent_quotes()))

    response = client.post("/api/v1/price-check", json={"legs": [{**KEY_PARAMS, "last_seen_odds": 2.00, "leg_id": "leg-1"}]})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "changed"
    assert body["any_changed"] is True
    assert body["results"][0]["bps_diff"] == 250
    assert body["results"][0]["leg"]["leg_id"] == "leg-1"


def test_price_check_validates_odds(client_with_store) -> None:
    client = client_with_store(_FakeStore())

    response = client.post("/api/v1/price-check", json={"legs": [{**KEY_PARAMS, "last_seen_odds": 1.0}]})

    assert response.status_code == 422


def test_clv_requires_user_or_bet(client_with_store) -> None:
    client = client_with_store(_FakeStore())

    assert client.get("/api/v1/clv").status_code == 400


def test_store_outage_is_503(client_with_store) -> None:
    client = client_with_store(_FakeStore(fail=True))

    response = client.post("/api/v1/picks/edges/refresh")

    assert response.status_code == 503


def test_health_reports_quote_count() -> None:
    observed_at = datetime(2026, 3, 1, 18, 0, tzinfo=UTC)
    values = iter([42, observed_at])

    async def _fake_session():
        async def scalar(stmt):
            return next(values)

        yield SimpleNamespace(scalar=scalar)

    app.dependency_overrides[get_session] = _fake_session
    try:
        response = TestClient(app).get("/api/v1/system/health")
    finally:
        app.dependency_overrides.clear()

    assert response.json() == {"status": "ok", "quote_count": 42, "last_observed_at": observed_at.isoformat()}


def test_recent_quotes_contract(client_with_store) -> None:
    client = client_with_store(_FakeStore(_recent_quotes()))

    rows = client.get("/api/v1/odds/quotes", params=KEY_PARAMS).json()

    assert {row["book"] for row in rows} == {"a", "b", "c"}
    assert all(row["selection"] == "boston celtics" and row["game_start"] is None for row in rows)


def test_edges_endpoint_serves_published_rationale(client_with_store) -> None:
    now = datetime.now(UTC)
    pick = EdgePick(
        key=KEY,
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
        computed_at=now,
        rationale="Sharp books moved first.",
    )
    cycles = PickCycleStore()
    asyncio.run(cycles.publish(PickCycle(kind=EDGE_KIND, window_pair=None, cycle_at=now, picks=(pick,), annotated=True)))
    client = client_with_store(_FakeStore(), cycles)

    body = client.get("/api/v1/picks/edges").json()
    status = client.get("/api/v1/system/cycles").json()

    assert [p["rationale"] for p in body] == ["Sharp books moved first."]
    assert status[0]["annotated"] is True
