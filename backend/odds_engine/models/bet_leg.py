from datetime import datetime

from sqlalchemy import DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from odds_engine.database import Base


class BetLeg(Base):
    """Mirror of the bet ledger's legs. The engine only reads these rows."""

    __tablename__ = "bet_legs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    bet_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    market_key: Mapped[str] = mapped_column(String(512), index=True)
    sport: Mapped[str] = mapped_column(String(64))
    league: Mapped[str] = mapped_column(String(64))
    team1: Mapped[str] = mapped_column(String(128))
    team2: Mapped[str] = mapped_column(String(128))
    market: Mapped[str] = mapped_column(String(64))
    selection: Mapped[str] = mapped_column(String(128))
    player: Mapped[str | None] = mapped_column(String(128), nullable=True)
    line: Mapped[float | None] = mapped_column(Float, nullable=True)
    bookmaker: Mapped[str | None] = mapped_column(String(64), nullable=True)
    placed_decimal_odds: Mapped[float] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    game_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    placed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
