from datetime import datetime

from pydantic import BaseModel

from odds_engine.schemas.odds import MarketKeyOut


class EdgePickResponse(BaseModel):
    key: MarketKeyOut
    best_book: str
    best_decimal_odds: float
    consensus_prob: float
    consensus_decimal_odds: float
    edge_percent: float
    edge_prob: float
    edge_bps: int
    confidence: float
    book_count: int
    low_confidence: bool
    computed_at: datetime
    rationale: str | None = None


class MomentumPickResponse(BaseModel):
    key: MarketKeyOut
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


class CycleSummary(BaseModel):
    cycle_id: str
    kind: str
    picks: int
    annotated: bool
