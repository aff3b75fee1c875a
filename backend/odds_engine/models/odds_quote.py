from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from odds_engine.database import Base


class OddsQuote(Base):
    __tablename__ = "odds_quotes"
    __table_args__ = (
        Index("ix_quotes_key_book_time", "market_key", "bookmaker", "observed_at"),
        Index("ix_quotes_game_market", "sport", "league", "team1", "team2", "market"),
        Index("ix_quotes_game_start", "game_start"),
        CheckConstraint("decimal_odds > 1.0", name="ck_odds_quotes_decimal_gt_one"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    market_key: Mapped[str] = mapped_column(String(512), index=True)
    sport: Mapped[str] = mapped_column(String(64))
    league: Mapped[str] = mapped_column(String(64))
    team1: Mapped[str] = mapped_column(String(128))
    team2: Mapped[str] = mapped_column(String(128))
    market: Mapped[str] = mapped_column(String(64))
    selection: Mapped[str] = mapped_column(String(128))
    player: Mapped[str | None] = mapped_column(String(128), nullable=True)
    line: Mapped[float | None] = mapped_column(Float, nullable=True)
    bookmaker: Mapped[str] = mapped_column(String(64), index=True)
    decimal_odds: Mapped[float] = mapped_column(Float)
    implied_prob: Mapped[float] = mapped_column(Float)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    game_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
