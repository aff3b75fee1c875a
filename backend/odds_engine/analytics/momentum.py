from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta

from odds_engine.analytics.consensus import book_fair_prices, calculate_consensus
from odds_engine.analytics.market import MarketKey, Quote
from odds_engine.errors import InsufficientBooks

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_PAIR = (15, 60)
DEFAULT_TOP_N = 20
DEFAULT_MOMENTUM_RATIONALE = "Consensus is moving and this book has not caught up yet."


@dataclass(frozen=True, slots=True)
class MomentumPick:
    key: MarketKey
    book: str
    odds_now: float
    short_minutes: int
    long_minutes: int
    consensus_prob_now: float
    consensus_prob_short: float
    consensus_prob_long: float
    consensus_change_short: float
    consensus_change_long: float
    book_prob_now: float
    book_prob_short: float
    book_change_short: float
    lag_prob: float
    is_lagging: bool
    momentum_score: float
    book_count: int
    computed_at: datetime
    rationale: str | None = None

    def with_rationale(self, rationale: str) -> MomentumPick:
        return replace(self, rationale=rationale)


def momentum_score(consensus_change_long: float, book_count: int) -> float:
    """Sustained consensus movement in bps, scaled up by corroborating books.

    Zero movement scores 0; the score grows strictly with the absolute
    long-window movement for a fixed book count and grows with book count.
    """
    if book_count < 1:
        return 0.0
    return abs(consensus_change_long) * 10000 * (1 + math.log(book_count))


def build_momentum_pick(
    key: MarketKey,
    book: str,
    *,
    odds_now: float,
    consensus_probs: tuple[float, float, float],
    book_probs: tuple[float, float],
    book_count: int,
    window_pair: tuple[int, int] = DEFAULT_WINDOW_PAIR,
    computed_at: datetime,
) -> MomentumPick:
    consensus_now, consensus_short, consensus_long = consensus_probs
    book_now, book_short = book_probs
    consensus_change_short = consensus_now - consensus_short
    consensus_change_long = consensus_now - consensus_long
    book_change_short = book_now - book_short
    lag_prob = consensus_change_short - book_change_short
    return MomentumPick(
        key=key,
        book=book,
        odds_now=odds_now,
        short_minutes=window_pair[0],
        long_minutes=window_pair[1],
        consensus_prob_now=consensus_now,
        consensus_prob_short=consensus_short,
        consensus_prob_long=consensus_long,
        consensus_change_short=consensus_change_short,
        consensus_change_long=consensus_change_long,
        book_prob_now=book_now,
        book_prob_short=book_short,
        book_change_short=book_change_short,
        lag_prob=lag_prob,
        is_lagging=lag_prob > 0,
        momentum_score=momentum_score(consensus_change_long, book_count),
        book_count=book_count,
        computed_at=computed_at,
    )


def momentum_for_key(
    key: MarketKey,
    quotes: list[Quote],
    now: datetime,
    *,
    window_pair: tuple[int, int] = DEFAULT_WINDOW_PAIR,
    lookback: timedelta | None = None,
) -> list[MomentumPick]:
    """Momentum picks for every book quoting ``key`` now and at the short window.

    Returns an empty list when the consensus is missing at any of the three instants.
    """
    short_minutes, long_minutes = window_pair
    at_short = now - timedelta(minutes=short_minutes)
    at_long = now - timedelta(minutes=long_minutes)
    try:
        consensus_now = calculate_consensus(key, quotes, now, lookback=lookback)
        consensus_short = calculate_consensus(key, quotes, at_short, lookback=lookback)
        consensus_long = calculate_consensus(key, quotes, at_long, lookback=lookback)
    except InsufficientBooks:
        logger.debug("momentum skipped: key=%s reason=missing window observation", key.as_string())
        return []

    books_now = book_fair_prices(key, quotes, now, lookback)
    books_short = book_fair_prices(key, quotes, at_short, lookback)

    picks: list[MomentumPick] = []
    for book, price_now in books_now.items():
        price_short = books_short.get(book)
        if price_short is None:
            continue
        picks.append(
            build_momentum_pick(
                key,
                book,
                odds_now=price_now.decimal_odds,
                consensus_probs=(
                    consensus_now.consensus_prob,
                    consensus_short.consensus_prob,
                    consensus_long.consensus_prob,
                ),
                book_probs=(price_now.fair_prob, price_short.fair_prob),
                book_count=consensus_now.book_count,
                window_pair=window_pair,
                computed_at=now,
            )
        )
    return picks


def rank_momentum(
    quotes: list[Quote],
    now: datetime,
    *,
    window_pair: tuple[int, int] = DEFAULT_WINDOW_PAIR,
    top_n: int = DEFAULT_TOP_N,
    lookback: timedelta | None = None,
) -> list[MomentumPick]:
    short_minutes, long_minutes = window_pair
    if not 0 < short_minutes < long_minutes:
        raise ValueError("window pair must satisfy 0 < short < long")

    by_group: dict[tuple, list[Quote]] = defaultdict(list)
    for q in quotes:
        by_group[q.key.market_group].append(q)

    picks: list[MomentumPick] = []
    for group_quotes in by_group.values():
        for key in {q.key for q in group_quotes}:
            picks.extend(momentum_for_key(key, group_quotes, now, window_pair=window_pair, lookback=lookback))

    picks.sort(key=lambda p: (-p.momentum_score, -p.lag_prob, p.key.as_string(), p.book))
    return picks[: max(0, top_n)]


def momentum_summary(pick: MomentumPick) -> dict:
    return {
        "segment": "momentum_surge",
        "market": pick.key.market,
        "selection": pick.key.selection,
        "player": pick.key.player,
        "line": pick.key.line,
        "matchup": f"{pick.key.team1} vs {pick.key.team2}",
        "book": pick.book,
        "odds_now": round(pick.odds_now, 2),
        "windows": [f"{pick.short_minutes}m", f"{pick.long_minutes}m"],
        "consensus_change_short": round(pick.consensus_change_short, 4),
        "consensus_change_long": round(pick.consensus_change_long, 4),
        "lag_prob": round(pick.lag_prob, 4),
        "book_count": pick.book_count,
    }


def momentum_pick_to_dict(pick: MomentumPick) -> dict:
    payload = asdict(pick)
    payload["computed_at"] = pick.computed_at.isoformat()
    return payload


def momentum_pick_from_dict(payload: dict) -> MomentumPick:
    return MomentumPick(
        **{
            **payload,
            "key": MarketKey(**payload["key"]),
            "computed_at": datetime.fromisoformat(payload["computed_at"]),
        }
    )
