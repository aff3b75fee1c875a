from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

SPREAD_MARKETS = {"spreads", "spread", "alternate_spreads", "handicap", "run_line", "puck_line"}
# Feeds disagree on kickoff by seconds or minutes; two meetings of the same teams never sit this close.
SAME_GAME_TOLERANCE = timedelta(hours=1)


@dataclass(frozen=True, slots=True)
class GameRef:
    sport: str
    league: str
    team1: str
    team2: str
    start_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class MarketKey:
    sport: str
    league: str
    team1: str
    team2: str
    market: str
    selection: str
    player: str | None = None
    line: float | None = None

    @property
    def game(self) -> tuple[str, str, str, str]:
        return (self.sport, self.league, self.team1, self.team2)

    @property
    def market_group(self) -> tuple:
        """Everything but the selection and line: the market a selection belongs to."""
        return (*self.game, self.market, self.player)

    def complement_line(self) -> float | None:
        if self.line is None:
            return None
        if self.market in SPREAD_MARKETS:
            return -self.line
        return self.line

    def is_complement(self, other: MarketKey) -> bool:
        if other.market_group != self.market_group or other.selection == self.selection:
            return False
        return _same_line(other.line, self.complement_line())

    def as_string(self) -> str:
        line = "" if self.line is None else f"{self.line + 0.0:.10g}"
        return "|".join(
            [self.sport, self.league, self.team1, self.team2, self.market, self.selection, self.player or "", line]
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class Quote:
    key: MarketKey
    book: str
    decimal_odds: float
    implied_prob: float
    observed_at: datetime
    game_start: datetime | None = None


def _same_line(a: float | None, b: float | None) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return abs(a - b) < 1e-9


def same_game_start(a: datetime | None, b: datetime | None) -> bool:
    if a is None or b is None:
        return False
    return abs(a - b) <= SAME_GAME_TOLERANCE


def latest_per_book(quotes: list[Quote], as_of: datetime, since: datetime | None = None) -> dict[str, Quote]:
    """Latest quote per book observed at or before ``as_of`` (and after ``since``)."""
    latest: dict[str, Quote] = {}
    for q in quotes:
        if q.observed_at > as_of:
            continue
        if since is not None and q.observed_at <= since:
            continue
        current = latest.get(q.book)
        if current is None or q.observed_at > current.observed_at:
            latest[q.book] = q
    return latest
