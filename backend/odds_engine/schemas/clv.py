from pydantic import BaseModel

from odds_engine.schemas.odds import MarketKeyOut


class CLVRecordResponse(BaseModel):
    leg_id: str
    bet_id: str
    user_id: str
    key: MarketKeyOut
    placed_decimal_odds: float
    closing_decimal_odds: float | None = None
    closing_bookmaker: str | None = None
    clv_bps: int | None = None
    tier: str


class CLVTierCount(BaseModel):
    tier: str
    count: int


class CLVStatsResponse(BaseModel):
    avg_clv_bps: float
    total_with_clv: int
    positive_count: int
    negative_count: int
    neutral_count: int
    unknown_count: int
    distribution: list[CLVTierCount]


class CLVResponse(BaseModel):
    records: list[CLVRecordResponse]
    stats: CLVStatsResponse
