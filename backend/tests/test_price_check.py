import asyncio
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import OperationalError

from odds_engine.analytics.market import MarketKey, Quote
from odds_engine.analytics.price_drift import FETCH_FAILED, PriceCheckLeg, evaluate_drift
from odds_engine.services.price_check_service import check_price_drift

NOW = datetime(2026, 3, 1, 18, 0, tzinfo=UTC)
KEY = MarketKey("basketball", "nba", "boston celtics", "miami heat", "h2h", "boston celtics")
BROKEN = MarketKey("basketball", "nba", "denver nuggets", "utah jazz", "h2h", "denver nuggets")


def _quote(book: str, odds: float, minutes_ago: int, key: MarketKey = KEY) -> Quote:
    return Quote(key=key, book=book, decimal_odds=odds, implied_prob=1 / odds, observed_at=NOW - timedelta(minutes=minutes_ago))


def test_drift_against_best_current_price_is_flagged() -> None:
    leg = PriceCheckLeg(key=KEY, last_seen_odds=2.00)

    result = evaluate_drift(leg, [_quote("a", 1.98, 1), _quote("b", 2.05, 2)], threshold_bps=50)

    assert result.latest_odds == 2.05
    assert result.bps_diff == 250
    assert result.changed is True
    assert [b["bookmaker"] for b in result.bookmakers] == ["a", "b"]


def test_move_within_threshold_is_not_changed() -> None:
    result = evaluate_drift(PriceCheckLeg(key=KEY, last_seen_odds=2.00), [_quote("a", 2.01, 1)], threshold_bps=50)

    assert result.bps_diff == 50
    assert result.changed is False


def test_no_recent_quotes_keeps_last_seen_price() -> None:
    result = evaluate_drift(PriceCheckLeg(key=KEY, last_seen_odds=1.91), [])

    assert result.latest_odds == 1.91
    assert result.bps_diff == 0
    assert result.changed is False


class _FakeStore:
    def __init__(self, quotes) -> None:
        self.quotes = quotes
        self.calls = []

    async def get_recent_quotes(self, key, limit, started_after=None):
        self.calls.append((key, limit, started_after))
        if key == BROKEN:
            raise OperationalError("SELECT", {}, Exception("connection reset"))
        return [q for q in self.quotes if q.key == key][:limit]


def test_check_price_drift_isolates_per_leg_failures() -> None:
    store = _FakeStore([_quote("a", 2.05, 1)])
    legs = [
        PriceCheckLeg(key=KEY, last_seen_odds=2.00, leg_id="leg-1"),
        PriceCheckLeg(key=BROKEN, last_seen_odds=1.80, leg_id="leg-2"),
    ]

    response = asyncio.run(check_price_drift(store, legs, threshold_bps=50, recent_limit=20, now=NOW))

    assert response["status"] == "changed"
    assert response["any_changed"] is True
    ok, failed = response["results"]
    assert ok["bps_diff"] == 250
    assert ok["error"] is None
    assert failed["changed"] is False
    assert failed["latest_odds"] == 1.80
    assert failed["bps_diff"] == 0
    assert failed["error"] == FETCH_FAILED
    assert store.calls[0] == (KEY, 20, NOW)


def test_check_price_drift_defaults_and_ok_status() -> None:
    store = _FakeStore([_quote("a", 2.00, 1)])

    response = asyncio.run(check_price_drift(store, [PriceCheckLeg(key=KEY, last_seen_odds=2.00)], now=NOW))

    assert response["status"] == "ok"
    assert response["threshold_bps"] == 50
    assert response["any_changed"] is False
    assert response["checked_at"] == NOW.isoformat()
