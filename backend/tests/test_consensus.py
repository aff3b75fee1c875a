from datetime import UTC, datetime, timedelta

import pytest

from odds_engine.analytics.consensus import build_consensus_snapshots, calculate_consensus, consensus_to_dict
from odds_engine.analytics.market import MarketKey, Quote
from odds_engine.errors import InsufficientBooks

NOW = datetime(2026, 3, 1, 18, 0, tzinfo=UTC)
HOME = MarketKey("basketball", "nba", "boston celtics", "miami heat", "h2h", "boston celtics")
AWAY = MarketKey("basketball", "nba", "boston celtics", "miami heat", "h2h", "miami heat")


def _quote(key: MarketKey, book: str, odds: float, minutes_ago: int = 1) -> Quote:
    return Quote(key=key, book=book, decimal_odds=odds, implied_prob=1 / odds, observed_at=NOW - timedelta(minutes=minutes_ago))


def test_consensus_without_opposite_side_uses_raw_implied_probabilities() -> None:
    quotes = [_quote(HOME, "a", 1.91), _quote(HOME, "b", 1.95), _quote(HOME, "c", 2.05)]

    snapshot = calculate_consensus(HOME, quotes, NOW)

    expected = (1 / 1.91 + 1 / 1.95 + 1 / 2.05) / 3
    assert snapshot.consensus_prob == pytest.approx(expected)
    assert snapshot.consensus_decimal_odds == 1 / snapshot.consensus_prob
    assert snapshot.book_count == 3
    assert snapshot.best_book == "c"
    assert snapshot.best_decimal_odds == 2.05
    assert snapshot.low_confidence is True
    assert snapshot.raw_fallback_books == 3


def test_consensus_devigs_against_complementary_side() -> None:
    quotes = [
        _quote(HOME, "a", 1.91),
        _quote(AWAY, "a", 1.91),
        _quote(HOME, "b", 1.80),
        _quote(AWAY, "b", 2.10),
    ]

    snapshot = calculate_consensus(HOME, quotes, NOW)

    fair_b = (1 / 1.80) / (1 / 1.80 + 1 / 2.10)
    assert snapshot.consensus_prob == pytest.approx((0.5 + fair_b) / 2)
    assert snapshot.devigged_books == 2
    assert snapshot.low_confidence is False


def test_spread_complement_uses_negated_line() -> None:
    home_spread = MarketKey("basketball", "nba", "boston celtics", "miami heat", "spreads", "boston celtics", line=-4.5)
    away_spread = MarketKey("basketball", "nba", "boston celtics", "miami heat", "spreads", "miami heat", line=4.5)
    away_wrong_line = MarketKey("basketball", "nba", "boston celtics", "miami heat", "spreads", "miami heat", line=5.5)

    quotes = [_quote(home_spread, "a", 1.90), _quote(away_spread, "a", 1.90), _quote(away_wrong_line, "a", 1.50)]

    snapshot = calculate_consensus(home_spread, quotes, NOW)

    assert snapshot.consensus_prob == pytest.approx(0.5)


def test_consensus_uses_latest_quote_per_book_only() -> None:
    quotes = [_quote(HOME, "a", 3.00, minutes_ago=30), _quote(HOME, "a", 2.00, minutes_ago=5), _quote(HOME, "a", 9.0, minutes_ago=-5)]

    snapshot = calculate_consensus(HOME, quotes, NOW)

    assert snapshot.book_count == 1
    assert snapshot.consensus_prob == pytest.approx(0.5)


def test_best_price_tie_prefers_most_recent_observation() -> None:
    quotes = [_quote(HOME, "early", 2.05, minutes_ago=10), _quote(HOME, "late", 2.05, minutes_ago=2)]

    snapshot = calculate_consensus(HOME, quotes, NOW)

    assert snapshot.best_book == "late"
    assert snapshot.best_observed_at == NOW - timedelta(minutes=2)


def test_lookback_excludes_stale_books() -> None:
    quotes = [_quote(HOME, "fresh", 2.00, minutes_ago=5), _quote(HOME, "stale", 1.50, minutes_ago=400)]

    snapshot = calculate_consensus(HOME, quotes, NOW, lookback=timedelta(minutes=180))

    assert snapshot.book_count == 1
    assert snapshot.best_book == "fresh"


def test_no_contributing_books_raises_insufficient_books() -> None:
    with pytest.raises(InsufficientBooks):
        calculate_consensus(HOME, [_quote(AWAY, "a", 1.91)], NOW)


def test_consensus_probability_is_within_bounds() -> None:
    quotes = [_quote(HOME, book, odds) for book, odds in (("a", 1.01), ("b", 1.02), ("c", 50.0))]

    snapshot = calculate_consensus(HOME, quotes, NOW)

    assert 0 < snapshot.consensus_prob <= 1


def test_build_consensus_snapshots_covers_every_key() -> None:
    quotes = [_quote(HOME, "a", 1.91), _quote(AWAY, "a", 1.91), _quote(HOME, "b", 1.95)]

    snapshots = build_consensus_snapshots(quotes, NOW, computed_at=NOW)

    assert {s.key for s in snapshots} == {HOME, AWAY}
    payload = consensus_to_dict(snapshots[0])
    assert payload["computed_at"] == NOW.isoformat()
    assert isinstance(payload["outlier_books"], list)
