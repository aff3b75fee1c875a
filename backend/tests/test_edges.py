from datetime import UTC, datetime, timedelta

import pytest

from odds_engine.analytics.consensus import ConsensusSnapshot, calculate_consensus
from odds_engine.analytics.edges import (
    CONFIDENCE_CAP,
    CONFIDENCE_FLOOR,
    confidence_score,
    detect_edge,
    edge_pick_to_dict,
    edge_summary,
    rank_edges,
)
from odds_engine.analytics.market import MarketKey, Quote

NOW = datetime(2026, 3, 1, 18, 0, tzinfo=UTC)


def _key(selection: str) -> MarketKey:
    return MarketKey("basketball", "nba", "boston celtics", "miami heat", "h2h", selection)


def _snapshot(selection: str, consensus_prob: float, best_odds: float, book_count: int = 3) -> ConsensusSnapshot:
    return ConsensusSnapshot(
        key=_key(selection),
        as_of=NOW,
        computed_at=NOW,
        consensus_prob=consensus_prob,
        consensus_decimal_odds=1 / consensus_prob,
        book_count=book_count,
        best_book="book_a",
        best_decimal_odds=best_odds,
        best_observed_at=NOW,
        devigged_books=book_count,
        raw_fallback_books=0,
        low_confidence=False,
        dispersion=0.0,
        outlier_books=(),
    )


def test_three_book_scenario_edge_and_confidence() -> None:
    key = _key("boston celtics")
    quotes = [
        Quote(key=key, book=book, decimal_odds=odds, implied_prob=1 / odds, observed_at=NOW - timedelta(minutes=1))
        for book, odds in (("a", 1.91), ("b", 1.95), ("c", 2.05))
    ]
    snapshot = calculate_consensus(key, quotes, NOW)

    pick = detect_edge(snapshot)

    consensus_decimal = 3 / (1 / 1.91 + 1 / 1.95 + 1 / 2.05)
    expected_edge = (2.05 - consensus_decimal) / consensus_decimal * 100
    assert pick is not None
    assert pick.best_book == "c"
    assert pick.edge_percent == pytest.approx(expected_edge)
    assert pick.confidence == pytest.approx(70 + expected_edge, abs=0.01)
    assert pick.edge_bps == round(expected_edge * 100)


def test_non_positive_edge_is_not_a_pick() -> None:
    assert detect_edge(_snapshot("even", 0.5, 2.0)) is None
    assert detect_edge(_snapshot("worse", 0.5, 1.9)) is None


@pytest.mark.parametrize("edge", [0.01, 3.5, 25.0, 400.0])
def test_confidence_is_capped_and_floored(edge) -> None:
    assert CONFIDENCE_FLOOR <= confidence_score(edge) <= CONFIDENCE_CAP


def test_confidence_cap_applies_to_large_edges() -> None:
    assert confidence_score(40.0) == 95.0
    assert confidence_score(10.0) == 80.0


def test_rank_edges_orders_by_edge_then_book_count() -> None:
    snapshots = [
        _snapshot("small", 0.5, 2.02, book_count=8),
        _snapshot("tie_few_books", 0.5, 2.10, book_count=2),
        _snapshot("tie_many_books", 0.5, 2.10, book_count=6),
        _snapshot("big", 0.5, 2.30, book_count=1),
        _snapshot("negative", 0.5, 1.80, book_count=9),
    ]

    picks = rank_edges(snapshots, top_n=10)

    assert [p.key.selection for p in picks] == ["big", "tie_many_books", "tie_few_books", "small"]
    assert all(p.edge_percent > 0 for p in picks)
    edges = [p.edge_percent for p in picks]
    assert edges == sorted(edges, reverse=True)


def test_rank_edges_truncates_to_top_n() -> None:
    snapshots = [_snapshot(f"s{i}", 0.5, 2.0 + i / 100) for i in range(1, 30)]

    assert len(rank_edges(snapshots)) == 20
    assert len(rank_edges(snapshots, top_n=3)) == 3
    assert rank_edges(snapshots, top_n=0) == []


def test_edge_pick_payload_and_summary() -> None:
    pick = detect_edge(_snapshot("boston celtics", 0.5, 2.10)).with_rationale("Priced above market.")

    payload = edge_pick_to_dict(pick)
    summary = edge_summary(pick)

    assert payload["rationale"] == "Priced above market."
    assert payload["key"]["selection"] == "boston celtics"
    assert payload["computed_at"] == NOW.isoformat()
    assert summary["segment"] == "value_hunter"
    assert summary["edge_percent"] == 5.0
