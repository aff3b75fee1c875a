from datetime import datetime

from sqlalchemy import DateTime, Float, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from odds_engine.database import Base


class ClosingOddsRow(Base):
    __tablename__ = "odds_closing"
    __table_args__ = (UniqueConstraint("market_key", "bookmaker", "game_start", name="uq_odds_closing_key_book_game"),)

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
    bookmaker: Mapped[str] = mapped_column(String(64))
    decimal_odds: Mapped[float] = mapped_column(Float)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    game_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
