from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from odds_engine.analytics.closing import select_closing_quotes
from odds_engine.analytics.market import GameRef
from odds_engine.config import settings
from odds_engine.errors import NoClosingPriceFound
from odds_engine.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def _game_label(game: GameRef) -> str:
    return f"{game.sport}/{game.league} {game.team1} vs {game.team2}"


async def capture_closing_for_game(store: SnapshotStore, game: GameRef, *, now: datetime | None = None) -> int:
    """Freeze the last pre-start price per (market key, book). Returns rows newly written.

    Rows already captured are left untouched, so repeated or concurrent calls converge.
    """
    if game.start_time is None:
        raise NoClosingPriceFound(f"{_game_label(game)} has no start time")
    now = now or datetime.now(UTC)

    quotes = await store.get_game_quotes(game, game.start_time)
    closing = select_closing_quotes(quotes, game.start_time, captured_at=now)
    if not closing:
        raise NoClosingPriceFound(f"No quote at or before {game.start_time.isoformat()} for {_game_label(game)}")

    written = await store.upsert_closing_odds(closing)
    logger.info(
        "closing capture: game=%s candidates=%s written=%s already_captured=%s",
        _game_label(game),
        len(closing),
        written,
        len(closing) - written,
    )
    return written


async def capture_due_games(
    store: SnapshotStore,
    *,
    now: datetime | None = None,
    grace_minutes: int | None = None,
) -> dict[str, int]:
    """Capture every game that started inside the grace window.

    Games with no qualifying quote are logged and retried on the next pass until
    they fall out of the window.
    """
    now = now or datetime.now(UTC)
    grace = timedelta(minutes=settings.closing_grace_minutes if grace_minutes is None else grace_minutes)
    games = await store.list_games_started_between(now - grace, now)

    summary = {"games": len(games), "captured_rows": 0, "games_without_price": 0}
    for game in games:
        try:
            summary["captured_rows"] += await capture_closing_for_game(store, game, now=now)
        except NoClosingPriceFound as exc:
            summary["games_without_price"] += 1
            logger.warning("closing capture skipped: game=%s reason=%s", _game_label(game), exc)
    return summary
