from pydantic import BaseModel, Field

from odds_engine.analytics.price_drift import PriceCheckLeg
from odds_engine.schemas.odds import MarketKeyIn, MarketKeyOut


class PriceCheckLegIn(MarketKeyIn):
    leg_id: str | None = None
    last_seen_odds: float = Field(gt=1.0)

    def to_leg(self) -> PriceCheckLeg:
        return PriceCheckLeg(key=self.to_key(), last_seen_odds=self.last_seen_odds, leg_id=self.leg_id)


class PriceCheckRequest(BaseModel):
    legs: list[PriceCheckLegIn] = Field(min_length=1)
    threshold_bps: int | None = Field(default=None, ge=0)


class PriceCheckLegOut(BaseModel):
    key: MarketKeyOut
    last_seen_odds: float
    leg_id: str | None = None


class BookmakerPrice(BaseModel):
    bookmaker: str
    odds: float


class PriceCheckResultOut(BaseModel):
    leg: PriceCheckLegOut
    latest_odds: float
    bps_diff: int
    changed: bool
    error: str | None = None
    bookmakers: list[BookmakerPrice] = []


class PriceCheckResponse(BaseModel):
    status: str
    threshold_bps: int
    any_changed: bool
    checked_at: str
    results: list[PriceCheckResultOut]
