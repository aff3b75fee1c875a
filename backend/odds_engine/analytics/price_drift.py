from __future__ import annotations

from dataclasses import asdict, dataclass, field

from odds_engine.analytics.market import MarketKey, Quote
from odds_engine.utils.odds_math import bps_change

DEFAULT_THRESHOLD_BPS = 50
FETCH_FAILED = "Failed to fetch current odds"


@dataclass(frozen=True, slots=True)
class PriceCheckLeg:
    key: MarketKey
    last_seen_odds: float
    leg_id: str | None = None


@dataclass(frozen=True, slots=True)
class PriceCheckResult:
    leg: PriceCheckLeg
    latest_odds: float
    bps_diff: int
    changed: bool
    error: str | None = None
    bookmakers: list[dict] = field(default_factory=list)


def evaluate_drift(leg: PriceCheckLeg, recent_quotes: list[Quote], threshold_bps: int = DEFAULT_THRESHOLD_BPS) -> PriceCheckResult:
    """Compare the last-seen price with the best price currently obtainable."""
    quotes = [q for q in recent_quotes if q.key == leg.key]
    latest_best = max((q.decimal_odds for q in quotes), default=leg.last_seen_odds)
    bps_diff = bps_change(leg.last_seen_odds, latest_best)
    ordered = sorted(quotes, key=lambda q: q.observed_at, reverse=True)
    return PriceCheckResult(
        leg=leg,
        latest_odds=latest_best,
        bps_diff=bps_diff,
        changed=abs(bps_diff) > threshold_bps,
        bookmakers=[{"bookmaker": q.book, "odds": q.decimal_odds} for q in ordered[:3]],
    )


def failed_check(leg: PriceCheckLeg, reason: str = FETCH_FAILED) -> PriceCheckResult:
    return PriceCheckResult(leg=leg, latest_odds=leg.last_seen_odds, bps_diff=0, changed=False, error=reason)


def price_check_to_dict(result: PriceCheckResult) -> dict:
    return asdict(result)
