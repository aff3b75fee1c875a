import logging
import math
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from odds_engine.analytics.market import MarketKey, Quote
from odds_engine.errors import InvalidQuote
from odds_engine.utils.odds_math import american_to_decimal, decimal_to_implied_prob, fractional_to_decimal

logger = logging.getLogger(__name__)

KEY_FIELDS = ("sport", "league", "team1", "team2", "market", "selection")
FIELD_ALIASES = {
    "team1": ("team1", "home_team", "home"),
    "team2": ("team2", "away_team", "away"),
    "selection": ("selection", "side", "outcome"),
    "line": ("line", "point"),
    "book": ("book", "bookmaker"),
    "observed_at": ("observed_at", "snapshot_time", "last_updated"),
    "game_start": ("game_start", "commence_time", "game_date"),
}


def normalize_str(s: str | None) -> str:
    """Normalize strings for robust comparisons."""
    if s is None:
        return ""
    return re.sub(r"\s+", " ", str(s).strip().lower())


def _field(raw: dict[str, Any], name: str) -> Any:
    for alias in FIELD_ALIASES.get(name, (name,)):
        value = raw.get(alias)
        if value is not None and value != "":
            return value
    return None


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidQuote(f"Unparseable timestamp: {value!r}") from exc
    else:
        raise InvalidQuote(f"Unsupported timestamp value: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_line(value: Any) -> float | None:
    if value is None:
        return None
    try:
        line = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidQuote(f"Invalid line: {value!r}") from exc
    if not math.isfinite(line):
        raise InvalidQuote(f"Invalid line: {value!r}")
    return line + 0.0


def build_market_key(raw: dict[str, Any]) -> MarketKey:
    values: dict[str, str] = {}
    missing = []
    for name in KEY_FIELDS:
        normalized = normalize_str(_field(raw, name))
        if not normalized:
            missing.append(name)
        values[name] = normalized
    if missing:
        raise InvalidQuote(f"Missing market key fields: {', '.join(missing)}")

    player = normalize_str(raw.get("player")) or None
    return MarketKey(**values, player=player, line=parse_line(_field(raw, "line")))


def resolve_decimal_odds(raw: dict[str, Any]) -> float:
    """Decimal price from whichever representation the feed supplied."""
    try:
        if raw.get("decimal_odds") is not None:
            decimal_odds = float(raw["decimal_odds"])
        elif raw.get("american_odds") is not None:
            decimal_odds = american_to_decimal(float(raw["american_odds"]))
        elif raw.get("fractional_odds") is not None:
            decimal_odds = fractional_to_decimal(str(raw["fractional_odds"]))
        elif raw.get("price") is not None:
            odds_format = normalize_str(raw.get("odds_format")) or "decimal"
            if odds_format == "american":
                decimal_odds = american_to_decimal(float(raw["price"]))
            elif odds_format == "fractional":
                decimal_odds = fractional_to_decimal(str(raw["price"]))
            elif odds_format == "decimal":
                decimal_odds = float(raw["price"])
            else:
                raise InvalidQuote(f"Unknown odds format: {raw.get('odds_format')!r}")
        else:
            raise InvalidQuote("Quote has no price")
    except (TypeError, ValueError) as exc:
        raise InvalidQuote(str(exc)) from exc

    if not math.isfinite(decimal_odds) or decimal_odds <= 1.0:
        raise InvalidQuote(f"Decimal odds must be greater than 1.0, got {decimal_odds}")
    return decimal_odds


def normalize_quote(raw: dict[str, Any]) -> Quote:
    """Canonical Quote from a raw feed row. Raises InvalidQuote."""
    key = build_market_key(raw)
    book = normalize_str(_field(raw, "book"))
    if not book:
        raise InvalidQuote("Missing book identifier")

    observed_raw = _field(raw, "observed_at")
    if observed_raw is None:
        raise InvalidQuote("Missing observed_at timestamp")

    game_start_raw = _field(raw, "game_start")
    decimal_odds = resolve_decimal_odds(raw)
    return Quote(
        key=key,
        book=book,
        decimal_odds=decimal_odds,
        implied_prob=decimal_to_implied_prob(decimal_odds),
        observed_at=parse_timestamp(observed_raw),
        game_start=parse_timestamp(game_start_raw) if game_start_raw is not None else None,
    )


@dataclass
class NormalizedBatch:
    quotes: list[Quote] = field(default_factory=list)
    rejected: list[dict[str, Any]] = field(default_factory=list)


def normalize_batch(rows: list[dict[str, Any]]) -> NormalizedBatch:
    batch = NormalizedBatch()
    for index, raw in enumerate(rows):
        try:
            batch.quotes.append(normalize_quote(raw))
        except InvalidQuote as exc:
            logger.warning("rejected raw quote: index=%s reason=%s", index, exc)
            batch.rejected.append({"index": index, "reason": str(exc)})
    return batch


def format_quote_rows(quotes: list[Quote]) -> list[dict]:
    """Plain payload rows for API composition."""
    return [
        {
            **q.key.to_dict(),
            "book": q.book,
            "decimal_odds": q.decimal_odds,
            "implied_prob": q.implied_prob,
            "observed_at": q.observed_at.isoformat(),
            "game_start": q.game_start.isoformat() if q.game_start else None,
        }
        for q in quotes
    ]


async def ingest_raw_quotes(store, rows: list[dict[str, Any]]) -> dict:
    """Normalize a raw feed batch and append the valid quotes; invalid rows are reported, never stored."""
    batch = normalize_batch(rows)
    inserted = await store.append_quotes(batch.quotes)
    logger.info("quote ingest: received=%s inserted=%s rejected=%s", len(rows), inserted, len(batch.rejected))
    return {"received": len(rows), "inserted": inserted, "rejected": batch.rejected}
