from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum

from odds_engine.analytics.closing import ClosingOdds
from odds_engine.analytics.market import MarketKey, same_game_start
from odds_engine.utils.odds_math import bps_change

# Product noise band: moves within +/-50 bps are neutral.
NEUTRAL_BAND_BPS = 50


class CLVTier(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class BetLegRef:
    leg_id: str
    bet_id: str
    user_id: str
    key: MarketKey
    placed_decimal_odds: float
    bookmaker: str | None = None
    settled_at: datetime | None = None
    game_start: datetime | None = None
    placed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class CLVRecord:
    leg_id: str
    bet_id: str
    user_id: str
    key: MarketKey
    placed_decimal_odds: float
    closing_decimal_odds: float | None
    closing_bookmaker: str | None
    clv_bps: int | None
    tier: CLVTier


@dataclass
class CLVStats:
    avg_clv_bps: float = 0.0
    total_with_clv: int = 0
    positive_count: int = 0
    negative_count: int = 0
    neutral_count: int = 0
    unknown_count: int = 0
    distribution: list[dict] = field(default_factory=list)


def calculate_clv_bps(placed_decimal_odds: float, closing_decimal_odds: float) -> int:
    return bps_change(placed_decimal_odds, closing_decimal_odds)


def clv_tier(clv_bps: int | None) -> CLVTier:
    if clv_bps is None:
        return CLVTier.UNKNOWN
    if clv_bps > NEUTRAL_BAND_BPS:
        return CLVTier.POSITIVE
    if clv_bps < -NEUTRAL_BAND_BPS:
        return CLVTier.NEGATIVE
    return CLVTier.NEUTRAL


def _rows_for_leg_game(leg: BetLegRef, rows: list[ClosingOdds]) -> list[ClosingOdds]:
    """Closing rows of the meeting the leg was placed on.

    A recorded game start picks that meeting. Without one, the first meeting starting
    at or after placement is used. A leg with neither only matches when a single
    meeting has closed.
    """
    if leg.game_start is not None:
        return [row for row in rows if same_game_start(row.game_start, leg.game_start)]
    starts = sorted({row.game_start for row in rows if row.game_start is not None})
    if leg.placed_at is not None:
        upcoming = [start for start in starts if start >= leg.placed_at]
        return [row for row in rows if upcoming and row.game_start == upcoming[0]]
    return rows if len(starts) <= 1 else []


def match_closing_price(leg: BetLegRef, closing_rows: list[ClosingOdds]) -> ClosingOdds | None:
    """The leg's own book when it closed, otherwise the best closing price across books."""
    rows = _rows_for_leg_game(leg, [row for row in closing_rows if row.key == leg.key])
    if not rows:
        return None
    if leg.bookmaker:
        own = next((row for row in rows if row.book == leg.bookmaker), None)
        if own is not None:
            return own
    return max(rows, key=lambda row: (row.decimal_odds, row.book))


def build_clv_record(leg: BetLegRef, closing_rows: list[ClosingOdds]) -> CLVRecord:
    closing = match_closing_price(leg, closing_rows)
    clv_bps = calculate_clv_bps(leg.placed_decimal_odds, closing.decimal_odds) if closing else None
    return CLVRecord(
        leg_id=leg.leg_id,
        bet_id=leg.bet_id,
        user_id=leg.user_id,
        key=leg.key,
        placed_decimal_odds=leg.placed_decimal_odds,
        closing_decimal_odds=closing.decimal_odds if closing else None,
        closing_bookmaker=closing.book if closing else None,
        clv_bps=clv_bps,
        tier=clv_tier(clv_bps),
    )


def summarize_clv(records: list[CLVRecord]) -> CLVStats:
    with_clv = [r for r in records if r.clv_bps is not None]
    tiers = Counter(r.tier for r in records)
    return CLVStats(
        avg_clv_bps=(sum(r.clv_bps for r in with_clv) / len(with_clv)) if with_clv else 0.0,
        total_with_clv=len(with_clv),
        positive_count=tiers[CLVTier.POSITIVE],
        negative_count=tiers[CLVTier.NEGATIVE],
        neutral_count=tiers[CLVTier.NEUTRAL],
        unknown_count=tiers[CLVTier.UNKNOWN],
        distribution=[{"tier": tier.value, "count": tiers[tier]} for tier in CLVTier if tiers[tier]],
    )


def clv_record_to_dict(record: CLVRecord) -> dict:
    payload = asdict(record)
    payload["tier"] = record.tier.value
    return payload


def clv_stats_to_dict(stats: CLVStats) -> dict:
    return asdict(stats)
