from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from statistics import mean, pstdev

from odds_engine.analytics.market import MarketKey, Quote, latest_per_book
from odds_engine.errors import InsufficientBooks
from odds_engine.utils.odds_math import fair_probability


@dataclass(frozen=True, slots=True)
class BookPrice:
    book: str
    decimal_odds: float
    implied_prob: float
    fair_prob: float
    devigged: bool
    observed_at: datetime


@dataclass(frozen=True, slots=True)
class ConsensusSnapshot:
    key: MarketKey
    as_of: datetime
    computed_at: datetime
    consensus_prob: float
    consensus_decimal_odds: float
    book_count: int
    best_book: str
    best_decimal_odds: float
    best_observed_at: datetime
    devigged_books: int
    raw_fallback_books: int
    low_confidence: bool
    dispersion: float
    outlier_books: tuple[str, ...]


def book_fair_prices(
    key: MarketKey,
    quotes: list[Quote],
    as_of: datetime,
    lookback: timedelta | None = None,
) -> dict[str, BookPrice]:
    """Per-book fair probability for ``key`` at ``as_of``.

    ``quotes`` may contain quotes for any key; only ``key`` and its complements
    are used. A book is de-vigged against its latest quote on the complementary side(s)
    in the same window, otherwise its raw implied probability is used.
    """
    since = as_of - lookback if lookback is not None else None
    side_quotes = [q for q in quotes if q.key == key]
    latest_side = latest_per_book(side_quotes, as_of, since)
    if not latest_side:
        return {}

    complements: dict[MarketKey, list[Quote]] = defaultdict(list)
    for q in quotes:
        if key.is_complement(q.key):
            complements[q.key].append(q)
    latest_other = {other: latest_per_book(rows, as_of, since) for other, rows in complements.items()}

    prices: dict[str, BookPrice] = {}
    for book, q in latest_side.items():
        other_probs = [by_book[book].implied_prob for by_book in latest_other.values() if book in by_book]
        prices[book] = BookPrice(
            book=book,
            decimal_odds=q.decimal_odds,
            implied_prob=q.implied_prob,
            fair_prob=fair_probability(q.implied_prob, other_probs),
            devigged=bool(other_probs),
            observed_at=q.observed_at,
        )
    return prices


def _best_price(prices: list[BookPrice]) -> BookPrice:
    # Max decimal odds; equal prices prefer the most recent observation, then book id.
    return min(prices, key=lambda p: (-p.decimal_odds, -p.observed_at.timestamp(), p.book))


def calculate_consensus(
    key: MarketKey,
    quotes: list[Quote],
    as_of: datetime,
    *,
    lookback: timedelta | None = None,
    computed_at: datetime | None = None,
) -> ConsensusSnapshot:
    prices = list(book_fair_prices(key, quotes, as_of, lookback).values())
    if not prices:
        raise InsufficientBooks(f"No contributing books for {key.as_string()} as of {as_of.isoformat()}")

    fair_probs = [p.fair_prob for p in prices]
    consensus_prob = min(1.0, mean(fair_probs))
    stdev = pstdev(fair_probs) if len(fair_probs) > 1 else 0.0
    outliers = sorted(p.book for p in prices if stdev > 0 and abs(p.fair_prob - consensus_prob) > (2 * stdev))
    devigged = sum(1 for p in prices if p.devigged)
    best = _best_price(prices)

    return ConsensusSnapshot(
        key=key,
        as_of=as_of,
        computed_at=computed_at or as_of,
        consensus_prob=consensus_prob,
        consensus_decimal_odds=1 / consensus_prob,
        book_count=len(prices),
        best_book=best.book,
        best_decimal_odds=best.decimal_odds,
        best_observed_at=best.observed_at,
        devigged_books=devigged,
        raw_fallback_books=len(prices) - devigged,
        low_confidence=devigged < len(prices),
        dispersion=stdev,
        outlier_books=tuple(outliers),
    )


def build_consensus_snapshots(
    quotes: list[Quote],
    as_of: datetime,
    *,
    lookback: timedelta | None = None,
    computed_at: datetime | None = None,
) -> list[ConsensusSnapshot]:
    """One snapshot per MarketKey present in ``quotes``; keys without books are skipped."""
    by_group: dict[tuple, list[Quote]] = defaultdict(list)
    for q in quotes:
        by_group[q.key.market_group].append(q)

    snapshots: list[ConsensusSnapshot] = []
    for group_quotes in by_group.values():
        for key in sorted({q.key for q in group_quotes}, key=MarketKey.as_string):
            try:
                snapshots.append(
                    calculate_consensus(key, group_quotes, as_of, lookback=lookback, computed_at=computed_at)
                )
            except InsufficientBooks:
                continue
    return snapshots


def consensus_to_dict(snapshot: ConsensusSnapshot) -> dict:
    payload = asdict(snapshot)
    payload["as_of"] = snapshot.as_of.isoformat()
    payload["computed_at"] = snapshot.computed_at.isoformat()
    payload["best_observed_at"] = snapshot.best_observed_at.isoformat()
    payload["outlier_books"] = list(snapshot.outlier_books)
    return payload
