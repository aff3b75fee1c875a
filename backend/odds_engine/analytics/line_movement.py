from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta

from odds_engine.analytics.market import Quote, latest_per_book
from odds_engine.utils.odds_math import bps_change

MAX_SERIES_POINTS = 100


def _bucket_start(ts: datetime, bucket_minutes: int) -> datetime:
    floored = ts.replace(second=0, microsecond=0)
    return floored - timedelta(minutes=floored.minute % bucket_minutes)


def line_movement_series(quotes: list[Quote], bucket_minutes: int = 1) -> list[dict]:
    """Average decimal price and distinct book count per time bucket, oldest first."""
    if bucket_minutes < 1:
        raise ValueError("bucket_minutes must be at least 1")

    buckets: dict[datetime, list[Quote]] = defaultdict(list)
    for q in quotes:
        buckets[_bucket_start(q.observed_at, bucket_minutes)].append(q)

    series = []
    for bucket in sorted(buckets)[-MAX_SERIES_POINTS:]:
        rows = buckets[bucket]
        series.append(
            {
                "bucket": bucket.isoformat(),
                "avg_odds": sum(q.decimal_odds for q in rows) / len(rows),
                "book_count": len({q.book for q in rows}),
            }
        )
    return series


def next_best_odds(quotes: list[Quote], as_of: datetime) -> dict | None:
    """Best and second-best book prices at ``as_of``, with the gap between them in bps."""
    latest = sorted(
        latest_per_book(quotes, as_of).values(),
        key=lambda q: (-q.decimal_odds, -q.observed_at.timestamp(), q.book),
    )
    if not latest:
        return None

    best = latest[0]
    runner_up = latest[1] if len(latest) > 1 else None
    return {
        "best_book": best.book,
        "best_odds": best.decimal_odds,
        "next_best_book": runner_up.book if runner_up else None,
        "next_best_odds": runner_up.decimal_odds if runner_up else None,
        "edge_bps": bps_change(runner_up.decimal_odds, best.decimal_odds) if runner_up else None,
    }
