from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from odds_engine.analytics.market import MarketKey, Quote


@dataclass(frozen=True, slots=True)
class ClosingOdds:
    key: MarketKey
    book: str
    decimal_odds: float
    observed_at: datetime
    captured_at: datetime
    game_start: datetime | None = None


def select_closing_quotes(quotes: list[Quote], start_time: datetime, captured_at: datetime) -> list[ClosingOdds]:
    """Last price before lock: per (MarketKey, book), the latest quote observed at or before start.

    Rows keep the quote's own game start (``start_time`` when the feed gave none), so later
    meetings of the same teams get their own rows.
    """
    latest: dict[tuple[MarketKey, str], Quote] = {}
    for q in quotes:
        if q.observed_at > start_time:
            continue
        current = latest.get((q.key, q.book))
        if current is None or q.observed_at > current.observed_at:
            latest[(q.key, q.book)] = q

    return [
        ClosingOdds(
            key=q.key,
            book=q.book,
            decimal_odds=q.decimal_odds,
            observed_at=q.observed_at,
            captured_at=captured_at,
            game_start=q.game_start or start_time,
        )
        for (_, _), q in sorted(latest.items(), key=lambda item: (item[0][0].as_string(), item[0][1]))
    ]
