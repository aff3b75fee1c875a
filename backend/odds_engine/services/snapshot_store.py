from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import and_, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from odds_engine.analytics.closing import ClosingOdds
from odds_engine.analytics.clv import BetLegRef, CLVRecord, CLVTier, clv_tier
from odds_engine.analytics.market import SAME_GAME_TOLERANCE, GameRef, MarketKey, Quote, same_game_start
from odds_engine.database import AsyncSessionLocal
from odds_engine.models.bet_leg import BetLeg
from odds_engine.models.closing_odds import ClosingOddsRow
from odds_engine.models.clv_record import CLVRecordRow
from odds_engine.models.odds_quote import OddsQuote

SETTLED_LEG_STATUSES = ("won", "lost", "push", "void", "settled")


class SnapshotStore(Protocol):
    async def append_quotes(self, quotes: list[Quote]) -> int: ...

    async def get_quotes(self, key: MarketKey, start: datetime, end: datetime) -> list[Quote]: ...

    async def get_market_quotes(self, key: MarketKey, start: datetime, end: datetime) -> list[Quote]: ...

    async def get_game_quotes(self, game: GameRef, end: datetime) -> list[Quote]: ...

    async def get_upcoming_quotes(self, start: datetime, end: datetime) -> list[Quote]: ...

    async def get_recent_quotes(
        self, key: MarketKey, limit: int, started_after: datetime | None = None
    ) -> list[Quote]: ...

    async def list_games_started_between(self, start: datetime, end: datetime) -> list[GameRef]: ...

    async def upsert_closing_odds(self, records: list[ClosingOdds]) -> int: ...

    async def get_closing_odds(
        self, keys: list[MarketKey], *, games_since: datetime | None = None
    ) -> list[ClosingOdds]: ...

    async def get_settled_legs_missing_clv(self, *, retry_unknown_since: datetime) -> list[BetLegRef]: ...

    async def upsert_clv_records(self, records: list[CLVRecord]) -> int: ...

    async def get_clv_records(self, *, user_id: str | None = None, bet_id: str | None = None) -> list[CLVRecord]: ...


def _aware(ts: datetime | None) -> datetime | None:
    if ts is None:
        return None
    return ts.replace(tzinfo=UTC) if ts.tzinfo is None else ts


def _key_from_row(row: OddsQuote | ClosingOddsRow | BetLeg) -> MarketKey:
    return MarketKey(
        sport=row.sport,
        league=row.league,
        team1=row.team1,
        team2=row.team2,
        market=row.market,
        selection=row.selection,
        player=row.player,
        line=row.line,
    )


def _key_columns(key: MarketKey) -> dict:
    return {
        "market_key": key.as_string(),
        "sport": key.sport,
        "league": key.league,
        "team1": key.team1,
        "team2": key.team2,
        "market": key.market,
        "selection": key.selection,
        "player": key.player,
        "line": key.line,
    }


def quote_from_row(row: OddsQuote) -> Quote:
    return Quote(
        key=_key_from_row(row),
        book=row.bookmaker,
        decimal_odds=row.decimal_odds,
        implied_prob=row.implied_prob,
        observed_at=_aware(row.observed_at),
        game_start=_aware(row.game_start),
    )


def leg_from_row(row: BetLeg) -> BetLegRef:
    return BetLegRef(
        leg_id=row.id,
        bet_id=row.bet_id,
        user_id=row.user_id,
        key=_key_from_row(row),
        placed_decimal_odds=row.placed_decimal_odds,
        bookmaker=row.bookmaker,
        settled_at=_aware(row.settled_at),
        game_start=_aware(row.game_start),
        placed_at=_aware(row.placed_at),
    )


class SqlSnapshotStore:
    """Snapshot store over SQLAlchemy. Each call opens its own session, so calls may run concurrently."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    @staticmethod
    def _insert(session: AsyncSession, model):
        dialect = session.bind.dialect.name if session.bind is not None else "postgresql"
        return sqlite_insert(model) if dialect == "sqlite" else pg_insert(model)

    async def append_quotes(self, quotes: list[Quote]) -> int:
        if not quotes:
            return 0
        async with self.session_factory() as session:
            session.add_all(
                [
                    OddsQuote(
                        **_key_columns(q.key),
                        bookmaker=q.book,
                        decimal_odds=q.decimal_odds,
                        implied_prob=q.implied_prob,
                        observed_at=q.observed_at,
                        game_start=q.game_start,
                    )
                    for q in quotes
                ]
            )
            await session.commit()
        return len(quotes)

    async def get_quotes(self, key: MarketKey, start: datetime, end: datetime) -> list[Quote]:
        async with self.session_factory() as session:
            rows = (
                await session.scalars(
                    select(OddsQuote)
                    .where(
                        OddsQuote.market_key == key.as_string(),
                        OddsQuote.observed_at >= start,
                        OddsQuote.observed_at <= end,
                    )
                    .order_by(OddsQuote.observed_at)
                )
            ).all()
        return [quote_from_row(r) for r in rows]

    async def get_market_quotes(self, key: MarketKey, start: datetime, end: datetime) -> list[Quote]:
        player_clause = OddsQuote.player.is_(None) if key.player is None else OddsQuote.player == key.player
        async with self.session_factory() as session:
            rows = (
                await session.scalars(
                    select(OddsQuote)
                    .where(
                        OddsQuote.sport == key.sport,
                        OddsQuote.league == key.league,
                        OddsQuote.team1 == key.team1,
                        OddsQuote.team2 == key.team2,
                        OddsQuote.market == key.market,
                        player_clause,
                        OddsQuote.observed_at >= start,
                        OddsQuote.observed_at <= end,
                    )
                    .order_by(OddsQuote.observed_at)
                )
            ).all()
        return [quote_from_row(r) for r in rows]

    async def get_game_quotes(self, game: GameRef, end: datetime) -> list[Quote]:
        stmt = select(OddsQuote).where(
            OddsQuote.sport == game.sport,
            OddsQuote.league == game.league,
            OddsQuote.team1 == game.team1,
            OddsQuote.team2 == game.team2,
            OddsQuote.observed_at <= end,
        )
        if game.start_time is not None:
            stmt = stmt.where(
                OddsQuote.game_start.between(game.start_time - SAME_GAME_TOLERANCE, game.start_time + SAME_GAME_TOLERANCE)
            )
        async with self.session_factory() as session:
            rows = (await session.scalars(stmt.order_by(OddsQuote.observed_at))).all()
        return [quote_from_row(r) for r in rows]

    async def get_upcoming_quotes(self, start: datetime, end: datetime) -> list[Quote]:
        """Quotes observed in [start, end] for games that have not started by ``end``."""
        async with self.session_factory() as session:
            rows = (
                await session.scalars(
                    select(OddsQuote)
                    .where(
                        OddsQuote.observed_at >= start,
                        OddsQuote.observed_at <= end,
                        or_(OddsQuote.game_start.is_(None), OddsQuote.game_start > end),
                    )
                    .order_by(OddsQuote.observed_at)
                )
            ).all()
        return [quote_from_row(r) for r in rows]

    async def get_recent_quotes(
        self, key: MarketKey, limit: int, started_after: datetime | None = None
    ) -> list[Quote]:
        stmt = select(OddsQuote).where(OddsQuote.market_key == key.as_string())
        if started_after is not None:
            stmt = stmt.where(or_(OddsQuote.game_start.is_(None), OddsQuote.game_start >= started_after))
        async with self.session_factory() as session:
            rows = (await session.scalars(stmt.order_by(OddsQuote.observed_at.desc()).limit(limit))).all()
        return [quote_from_row(r) for r in rows]

    async def list_games_started_between(self, start: datetime, end: datetime) -> list[GameRef]:
        async with self.session_factory() as session:
            rows = (
                await session.execute(
                    select(
                        OddsQuote.sport,
                        OddsQuote.league,
                        OddsQuote.team1,
                        OddsQuote.team2,
                        OddsQuote.game_start,
                    ).where(and_(OddsQuote.game_start >= start, OddsQuote.game_start <= end))
                    .distinct()
                )
            ).all()
        games = sorted(
            {
                GameRef(sport=sport, league=league, team1=team1, team2=team2, start_time=_aware(game_start))
                for sport, league, team1, team2, game_start in rows
            },
            key=lambda g: (g.start_time, g.sport, g.league, g.team1, g.team2),
        )
        # Books that disagree slightly on kickoff still describe one game; keep its earliest start.
        distinct: list[GameRef] = []
        for game in games:
            if not any(
                seen.sport == game.sport
                and seen.league == game.league
                and seen.team1 == game.team1
                and seen.team2 == game.team2
                and same_game_start(seen.start_time, game.start_time)
                for seen in distinct
            ):
                distinct.append(game)
        return distinct

    async def upsert_closing_odds(self, records: list[ClosingOdds]) -> int:
        """Insert-if-absent on (market_key, bookmaker, game_start). Returns rows actually written."""
        written = 0
        async with self.session_factory() as session:
            for record in records:
                stmt = (
                    self._insert(session, ClosingOddsRow)
                    .values(
                        **_key_columns(record.key),
                        bookmaker=record.book,
                        decimal_odds=record.decimal_odds,
                        observed_at=record.observed_at,
                        captured_at=record.captured_at,
                        game_start=record.game_start,
                    )
                    .on_conflict_do_nothing(index_elements=["market_key", "bookmaker", "game_start"])
                )
                result = await session.execute(stmt)
                written += max(result.rowcount or 0, 0)
            await session.commit()
        return written

    async def get_closing_odds(
        self, keys: list[MarketKey], *, games_since: datetime | None = None
    ) -> list[ClosingOdds]:
        """Closing rows for ``keys``; ``games_since`` drops meetings that started before it."""
        if not keys:
            return []
        stmt = select(ClosingOddsRow).where(ClosingOddsRow.market_key.in_({k.as_string() for k in keys}))
        if games_since is not None:
            stmt = stmt.where(ClosingOddsRow.game_start >= games_since - SAME_GAME_TOLERANCE)
        async with self.session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [
            ClosingOdds(
                key=_key_from_row(r),
                book=r.bookmaker,
                decimal_odds=r.decimal_odds,
                observed_at=_aware(r.observed_at),
                captured_at=_aware(r.captured_at),
                game_start=_aware(r.game_start),
            )
            for r in rows
        ]

    async def get_settled_legs_missing_clv(self, *, retry_unknown_since: datetime) -> list[BetLegRef]:
        """Settled legs with no CLV row, plus unknown ones settled or started since ``retry_unknown_since``.

        Older unknown rows stay unknown: their closing window has passed.
        """
        async with self.session_factory() as session:
            rows = (
                await session.scalars(
                    select(BetLeg)
                    .outerjoin(CLVRecordRow, CLVRecordRow.bet_leg_id == BetLeg.id)
                    .where(
                        BetLeg.status.in_(SETTLED_LEG_STATUSES),
                        or_(
                            CLVRecordRow.id.is_(None),
                            and_(
                                CLVRecordRow.clv_tier == CLVTier.UNKNOWN.value,
                                or_(BetLeg.settled_at >= retry_unknown_since, BetLeg.game_start >= retry_unknown_since),
                            ),
                        ),
                    )
                )
            ).all()
        return [leg_from_row(r) for r in rows]

    async def upsert_clv_records(self, records: list[CLVRecord]) -> int:
        """Create CLV rows; an existing row is only replaced while its tier is still unknown."""
        written = 0
        async with self.session_factory() as session:
            for record in records:
                values = {
                    "bet_leg_id": record.leg_id,
                    "bet_id": record.bet_id,
                    "user_id": record.user_id,
                    "market_key": record.key.as_string(),
                    "placed_decimal_odds": record.placed_decimal_odds,
                    "closing_decimal_odds": record.closing_decimal_odds,
                    "closing_bookmaker": record.closing_bookmaker,
                    "clv_bps": record.clv_bps,
                    "clv_tier": record.tier.value,
                }
                stmt = self._insert(session, CLVRecordRow).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["bet_leg_id"],
                    set_={
                        "closing_decimal_odds": stmt.excluded.closing_decimal_odds,
                        "closing_bookmaker": stmt.excluded.closing_bookmaker,
                        "clv_bps": stmt.excluded.clv_bps,
                        "clv_tier": stmt.excluded.clv_tier,
                    },
                    where=CLVRecordRow.clv_tier == CLVTier.UNKNOWN.value,
                )
                result = await session.execute(stmt)
                written += max(result.rowcount or 0, 0)
            await session.commit()
        return written

    async def get_clv_records(self, *, user_id: str | None = None, bet_id: str | None = None) -> list[CLVRecord]:
        stmt = select(BetLeg, CLVRecordRow).outerjoin(CLVRecordRow, CLVRecordRow.bet_leg_id == BetLeg.id)
        if user_id:
            stmt = stmt.where(BetLeg.user_id == user_id)
        if bet_id:
            stmt = stmt.where(BetLeg.bet_id == bet_id)
        async with self.session_factory() as session:
            rows = (await session.execute(stmt.order_by(BetLeg.placed_at.desc(), BetLeg.id))).all()

        records: list[CLVRecord] = []
        for leg, clv in rows:
            clv_bps = clv.clv_bps if clv else None
            records.append(
                CLVRecord(
                    leg_id=leg.id,
                    bet_id=leg.bet_id,
                    user_id=leg.user_id,
                    key=_key_from_row(leg),
                    placed_decimal_odds=leg.placed_decimal_odds,
                    closing_decimal_odds=clv.closing_decimal_odds if clv else None,
                    closing_bookmaker=clv.closing_bookmaker if clv else None,
                    clv_bps=clv_bps,
                    tier=clv_tier(clv_bps),
                )
            )
        return records


def get_store() -> SqlSnapshotStore:
    return SqlSnapshotStore(AsyncSessionLocal)
