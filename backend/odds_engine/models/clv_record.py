from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from odds_engine.database import Base


class CLVRecordRow(Base):
    __tablename__ = "clv_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    bet_leg_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    bet_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    market_key: Mapped[str] = mapped_column(String(512))
    placed_decimal_odds: Mapped[float] = mapped_column(Float)
    closing_decimal_odds: Mapped[float | None] = mapped_column(Float, nullable=True)
    closing_bookmaker: Mapped[str | None] = mapped_column(String(64), nullable=True)
    clv_bps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    clv_tier: Mapped[str] = mapped_column(String(16), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
