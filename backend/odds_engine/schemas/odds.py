from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from odds_engine.analytics.market import GameRef, MarketKey
from odds_engine.services.odds_normalizer import build_market_key, normalize_str, parse_timestamp


class MarketKeyIn(BaseModel):
    sport: str
    league: str
    team1: str
    team2: str
    market: str
    selection: str
    player: str | None = None
    line: float | None = None

    def to_key(self) -> MarketKey:
        return build_market_key(self.model_dump())


class MarketKeyOut(BaseModel):
    sport: str
    league: str
    team1: str
    team2: str
    market: str
    selection: str
    player: str | None = None
    line: float | None = None


class GameRefIn(BaseModel):
    sport: str
    league: str
    team1: str
    team2: str
    start_time: datetime

    def to_game(self) -> GameRef:
        return GameRef(
            sport=normalize_str(self.sport),
            league=normalize_str(self.league),
            team1=normalize_str(self.team1),
            team2=normalize_str(self.team2),
            start_time=parse_timestamp(self.start_time),
        )


class QuoteIngestRequest(BaseModel):
    quotes: list[dict[str, Any]] = Field(min_length=1)


class RejectedQuote(BaseModel):
    index: int
    reason: str


class QuoteIngestResponse(BaseModel):
    received: int
    inserted: int
    rejected: list[RejectedQuote]


class LineMovementPoint(BaseModel):
    bucket: datetime
    avg_odds: float
    book_count: int


class NextBestOddsResponse(BaseModel):
    best_book: str
    best_odds: float
    next_best_book: str | None = None
    next_best_odds: float | None = None
    edge_bps: int | None = None


class ConsensusResponse(BaseModel):
    key: MarketKeyOut
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
    outlier_books: list[str]
