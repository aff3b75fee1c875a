"""odds engine foundation

Revision ID: 0001_odds_engine
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_odds_engine"
down_revision = None
branch_labels = None
depends_on = None


def _market_key_columns() -> list[sa.Column]:
    return [
        sa.Column("market_key", sa.String(length=512), nullable=False),
        sa.Column("sport", sa.String(length=64), nullable=False),
        sa.Column("league", sa.String(length=64), nullable=False),
        sa.Column("team1", sa.String(length=128), nullable=False),
        sa.Column("team2", sa.String(length=128), nullable=False),
        sa.Column("market", sa.String(length=64), nullable=False),
        sa.Column("selection", sa.String(length=128), nullable=False),
        sa.Column("player", sa.String(length=128), nullable=True),
        sa.Column("line", sa.Float(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "odds_quotes",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_market_key_columns(),
        sa.Column("bookmaker", sa.String(length=64), nullable=False),
        sa.Column("decimal_odds", sa.Float(), nullable=False),
        sa.Column("implied_prob", sa.Float(), nullable=False),
        sa.Column("observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("game_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("decimal_odds > 1.0", name="ck_odds_quotes_decimal_gt_one"),
    )
    op.create_index("ix_odds_quotes_market_key", "odds_quotes", ["market_key"])
    op.create_index("ix_odds_quotes_bookmaker", "odds_quotes", ["bookmaker"])
    op.create_index("ix_odds_quotes_observed_at", "odds_quotes", ["observed_at"])
    op.create_index("ix_quotes_key_book_time", "odds_quotes", ["market_key", "bookmaker", "observed_at"])
    op.create_index("ix_quotes_game_market", "odds_quotes", ["sport", "league", "team1", "team2", "market"])
    op.create_index("ix_quotes_game_start", "odds_quotes", ["game_start"])

    op.create_table(
        "odds_closing",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_market_key_columns(),
        sa.Column("bookmaker", sa.String(length=64), nullable=False),
        sa.Column("decimal_odds", sa.Float(), nullable=False),
        sa.Column("observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("game_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("market_key", "bookmaker", "game_start", name="uq_odds_closing_key_book_game"),
    )
    op.create_index("ix_odds_closing_market_key", "odds_closing", ["market_key"])
    op.create_index("ix_odds_closing_game_start", "odds_closing", ["game_start"])

    op.create_table(
        "bet_legs",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("bet_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        *_market_key_columns(),
        sa.Column("bookmaker", sa.String(length=64), nullable=True),
        sa.Column("placed_decimal_odds", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("game_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("placed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_bet_legs_bet_id", "bet_legs", ["bet_id"])
    op.create_index("ix_bet_legs_user_id", "bet_legs", ["user_id"])
    op.create_index("ix_bet_legs_market_key", "bet_legs", ["market_key"])
    op.create_index("ix_bet_legs_status", "bet_legs", ["status"])
    op.create_index("ix_bet_legs_settled_at", "bet_legs", ["settled_at"])

    op.create_table(
        "clv_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bet_leg_id", sa.String(length=64), nullable=False),
        sa.Column("bet_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("market_key", sa.String(length=512), nullable=False),
        sa.Column("placed_decimal_odds", sa.Float(), nullable=False),
        sa.Column("closing_decimal_odds", sa.Float(), nullable=True),
        sa.Column("closing_bookmaker", sa.String(length=64), nullable=True),
        sa.Column("clv_bps", sa.Integer(), nullable=True),
        sa.Column("clv_tier", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_clv_records_bet_leg_id", "clv_records", ["bet_leg_id"], unique=True)
    op.create_index("ix_clv_records_bet_id", "clv_records", ["bet_id"])
    op.create_index("ix_clv_records_user_id", "clv_records", ["user_id"])
    op.create_index("ix_clv_records_clv_tier", "clv_records", ["clv_tier"])

    op.create_table(
        "pick_cycles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("window_key", sa.String(length=32), nullable=False),
        sa.Column("cycle_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("annotated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("picks", sa.JSON(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("kind", "window_key", "cycle_at", name="uq_pick_cycles_slot_time"),
    )
    op.create_index("ix_pick_cycles_kind", "pick_cycles", ["kind"])
    op.create_index("ix_pick_cycles_cycle_at", "pick_cycles", ["cycle_at"])


def downgrade() -> None:
    op.drop_index("ix_pick_cycles_cycle_at", table_name="pick_cycles")
    op.drop_index("ix_pick_cycles_kind", table_name="pick_cycles")
    op.drop_table("pick_cycles")
    op.drop_index("ix_clv_records_clv_tier", table_name="clv_records")
    op.drop_index("ix_clv_records_user_id", table_name="clv_records")
    op.drop_index("ix_clv_records_bet_id", table_name="clv_records")
    op.drop_index("ix_clv_records_bet_leg_id", table_name="clv_records")
    op.drop_table("clv_records")
    op.drop_index("ix_bet_legs_settled_at", table_name="bet_legs")
    op.drop_index("ix_bet_legs_status", table_name="bet_legs")
    op.drop_index("ix_bet_legs_market_key", table_name="bet_legs")
    op.drop_index("ix_bet_legs_user_id", table_name="bet_legs")
    op.drop_index("ix_bet_legs_bet_id", table_name="bet_legs")
    op.drop_table("bet_legs")
    op.drop_index("ix_odds_closing_game_start", table_name="odds_closing")
    op.drop_index("ix_odds_closing_market_key", table_name="odds_closing")
    op.drop_table("odds_closing")
    op.drop_index("ix_quotes_game_start", table_name="odds_quotes")
    op.drop_index("ix_quotes_game_market", table_name="odds_quotes")
    op.drop_index("ix_quotes_key_book_time", table_name="odds_quotes")
    op.drop_index("ix_odds_quotes_observed_at", table_name="odds_quotes")
    op.drop_index("ix_odds_quotes_bookmaker", table_name="odds_quotes")
    op.drop_index("ix_odds_quotes_market_key", table_name="odds_quotes")
    op.drop_table("odds_quotes")
