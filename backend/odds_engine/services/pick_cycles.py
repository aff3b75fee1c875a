from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from odds_engine.analytics.edges import edge_pick_from_dict, edge_pick_to_dict
from odds_engine.analytics.momentum import momentum_pick_from_dict, momentum_pick_to_dict
from odds_engine.config import settings
from odds_engine.database import AsyncSessionLocal
from odds_engine.models.pick_cycle import PickCycleRow

EDGE_KIND = "edge"
MOMENTUM_KIND = "momentum"

_PICK_CODECS = {
    EDGE_KIND: (edge_pick_to_dict, edge_pick_from_dict),
    MOMENTUM_KIND: (momentum_pick_to_dict, momentum_pick_from_dict),
}


@dataclass(frozen=True)
class PickCycle:
    kind: str
    window_pair: tuple[int, int] | None
    cycle_at: datetime
    picks: tuple[Any, ...]
    annotated: bool = False

    @property
    def cycle_id(self) -> str:
        return f"{self.kind}:{window_key(self.window_pair)}:{self.cycle_at.isoformat()}"


def window_key(window_pair: tuple[int, int] | None) -> str:
    return f"{window_pair[0]}-{window_pair[1]}" if window_pair else "none"


def _window_pair(key: str) -> tuple[int, int] | None:
    if key == "none":
        return None
    short, long = key.split("-")
    return int(short), int(long)


def _status_entry(newest: PickCycle, retained: int) -> dict[str, str | int | bool | None]:
    return {
        "kind": newest.kind,
        "window_pair": f"{newest.window_pair[0]}/{newest.window_pair[1]}" if newest.window_pair else None,
        "cycle_id": newest.cycle_id,
        "cycle_at": newest.cycle_at.isoformat(),
        "picks": len(newest.picks),
        "annotated": newest.annotated,
        "retained_cycles": retained,
    }


def _keeps_existing(existing: PickCycle | None, incoming: PickCycle) -> bool:
    """A numeric-only republish never replaces an annotated cycle with the same timestamp."""
    return existing is not None and existing.annotated and not incoming.annotated


class CycleStore(Protocol):
    async def publish(self, cycle: PickCycle) -> PickCycle: ...

    async def latest(self, kind: str, window_pair: tuple[int, int] | None = None) -> PickCycle | None: ...

    async def get_status(self) -> list[dict[str, str | int | bool | None]]: ...


@dataclass
class PickCycleStore:
    """In-process arena of immutable, timestamped result sets.

    Publishing swaps in a complete cycle in one assignment, so readers never see
    a partial list. A cycle published again under the same timestamp replaces
    the earlier one.
    """

    history_size: int = 5
    _cycles: dict[tuple[str, tuple[int, int] | None], dict[datetime, PickCycle]] = field(default_factory=dict)

    async def publish(self, cycle: PickCycle) -> PickCycle:
        slot_key = (cycle.kind, cycle.window_pair)
        slot = dict(self._cycles.get(slot_key, {}))
        if _keeps_existing(slot.get(cycle.cycle_at), cycle):
            return slot[cycle.cycle_at]
        slot[cycle.cycle_at] = cycle
        for stale in sorted(slot)[: -self.history_size]:
            del slot[stale]
        self._cycles[slot_key] = slot
        return cycle

    async def latest(self, kind: str, window_pair: tuple[int, int] | None = None) -> PickCycle | None:
        slot = self._cycles.get((kind, window_pair))
        if not slot:
            return None
        return slot[max(slot)]

    async def get_status(self) -> list[dict[str, str | int | bool | None]]:
        ordered = sorted(self._cycles.items(), key=lambda item: (item[0][0], window_key(item[0][1])))
        return [_status_entry(slot[max(slot)], len(slot)) for _, slot in ordered if slot]


class SqlPickCycleStore:
    """Cycles kept in ``pick_cycles`` so the worker's published rankings reach API readers."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], history_size: int = 5) -> None:
        self.session_factory = session_factory
        self.history_size = history_size

    @staticmethod
    def _insert(session: AsyncSession):
        dialect = session.bind.dialect.name if session.bind is not None else "postgresql"
        return sqlite_insert(PickCycleRow) if dialect == "sqlite" else pg_insert(PickCycleRow)

    @staticmethod
    def _from_row(row: PickCycleRow) -> PickCycle:
        _, decode = _PICK_CODECS[row.kind]
        cycle_at = row.cycle_at if row.cycle_at.tzinfo else row.cycle_at.replace(tzinfo=UTC)
        return PickCycle(
            kind=row.kind,
            window_pair=_window_pair(row.window_key),
            cycle_at=cycle_at,
            picks=tuple(decode(p) for p in row.picks),
            annotated=row.annotated,
        )

    async def _newest(self, session: AsyncSession, kind: str, slot: str) -> PickCycleRow | None:
        return await session.scalar(
            select(PickCycleRow)
            .where(PickCycleRow.kind == kind, PickCycleRow.window_key == slot)
            .order_by(PickCycleRow.cycle_at.desc())
            .limit(1)
        )

    async def publish(self, cycle: PickCycle) -> PickCycle:
        encode, _ = _PICK_CODECS[cycle.kind]
        slot = window_key(cycle.window_pair)
        async with self.session_factory() as session:
            stmt = self._insert(session).values(
                kind=cycle.kind,
                window_key=slot,
                cycle_at=cycle.cycle_at,
                annotated=cycle.annotated,
                picks=[encode(p) for p in cycle.picks],
                published_at=datetime.now(UTC),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["kind", "window_key", "cycle_at"],
                set_={
                    "picks": stmt.excluded.picks,
                    "annotated": stmt.excluded.annotated,
                    "published_at": stmt.excluded.published_at,
                },
                where=or_(PickCycleRow.annotated.is_(False), stmt.excluded.annotated.is_(True)),
            )
            result = await session.execute(stmt)
            stored = cycle
            if not result.rowcount:
                row = await session.scalar(
                    select(PickCycleRow).where(
                        PickCycleRow.kind == cycle.kind,
                        PickCycleRow.window_key == slot,
                        PickCycleRow.cycle_at == cycle.cycle_at,
                    )
                )
                if row is not None:
                    stored = self._from_row(row)

            retained = (
                await session.scalars(
                    select(PickCycleRow.cycle_at)
                    .where(PickCycleRow.kind == cycle.kind, PickCycleRow.window_key == slot)
                    .order_by(PickCycleRow.cycle_at.desc())
                )
            ).all()
            stale = retained[self.history_size :]
            if stale:
                await session.execute(
                    delete(PickCycleRow).where(
                        PickCycleRow.kind == cycle.kind,
                        PickCycleRow.window_key == slot,
                        PickCycleRow.cycle_at.in_(stale),
                    )
                )
            await session.commit()
        return stored

    async def latest(self, kind: str, window_pair: tuple[int, int] | None = None) -> PickCycle | None:
        async with self.session_factory() as session:
            row = await self._newest(session, kind, window_key(window_pair))
            return self._from_row(row) if row is not None else None

    async def get_status(self) -> list[dict[str, str | int | bool | None]]:
        async with self.session_factory() as session:
            rows = (
                await session.scalars(
                    select(PickCycleRow).order_by(
                        PickCycleRow.kind, PickCycleRow.window_key, PickCycleRow.cycle_at.desc()
                    )
                )
            ).all()
        slots: dict[tuple[str, str], list[PickCycleRow]] = {}
        for row in rows:
            slots.setdefault((row.kind, row.window_key), []).append(row)
        return [_status_entry(self._from_row(slot_rows[0]), len(slot_rows)) for slot_rows in slots.values()]


cycle_store = SqlPickCycleStore(AsyncSessionLocal, history_size=settings.cycle_history_size)


def get_cycle_store() -> CycleStore:
    return cycle_store
