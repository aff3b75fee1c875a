from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from odds_engine.database import Base


class PickCycleRow(Base):
    """One published ranking. The worker writes these; API readers serve the newest per slot."""

    __tablename__ = "pick_cycles"
    __table_args__ = (UniqueConstraint("kind", "window_key", "cycle_at", name="uq_pick_cycles_slot_time"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), index=True)
    window_key: Mapped[str] = mapped_column(String(32))
    cycle_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    annotated: Mapped[bool] = mapped_column(Boolean, default=False)
    picks: Mapped[list] = mapped_column(JSON, default=list)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
