# -*- coding: utf-8 -*-
"""Initial migration for Engage Admin: prize cycles.

Назначение:
    • Создать схему DB_SCHEMA_CORE (если задана) и таблицы призовых циклов:
      cycles, cycle_entries, cycle_prizes, cycle_winners.

Канон/инварианты:
    • UNIQUE(cycle_id, user_ref) в cycle_winners: один выигрыш на пользователя
      в цикле.
    • Индекс (status, draw_date) под выборку циклов, которые пора разыгрывать.

Запреты:
    • Только DDL, никаких данных.
"""

from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
from alembic import op

from backend.app.core.config_core import get_settings

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Optional[str] = None
branch_labels = None
depends_on = None

SCHEMA: Optional[str] = get_settings().db_schema


def _fk(column: str) -> str:
    return f"{SCHEMA}.{column}" if SCHEMA else column


def upgrade() -> None:
    if SCHEMA:
        op.execute(sa.text(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}"))

    op.create_table(
        "cycles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(16), nullable=False, server_default="draw"),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("draw_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("entry_fee", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("max_entries", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('draft', 'active', 'completed', 'cancelled')", name="cycle_status_check"
        ),
        sa.CheckConstraint("type IN ('draw', 'competition', 'challenge')", name="cycle_type_check"),
        sa.CheckConstraint("entry_fee >= 0", name="cycle_entry_fee_nonneg"),
        schema=SCHEMA,
    )
    op.create_index("ix_cycle_status_draw_date", "cycles", ["status", "draw_date"], schema=SCHEMA)

    op.create_table(
        "cycle_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "cycle_id",
            sa.Integer(),
            sa.ForeignKey(_fk("cycles.id"), ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_ref", sa.String(64), nullable=False),
        sa.Column("entry_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("payment_id", sa.String(128), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=True),
        schema=SCHEMA,
    )
    op.create_index("ix_cycle_entry_cycle", "cycle_entries", ["cycle_id", "id"], schema=SCHEMA)

    op.create_table(
        "cycle_prizes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "cycle_id",
            sa.Integer(),
            sa.ForeignKey(_fk("cycles.id"), ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("value", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("quantity >= 0", name="cycle_prize_quantity_nonneg"),
        schema=SCHEMA,
    )
    op.create_index("ix_cycle_prize_cycle", "cycle_prizes", ["cycle_id", "position"], schema=SCHEMA)

    op.create_table(
        "cycle_winners",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "cycle_id",
            sa.Integer(),
            sa.ForeignKey(_fk("cycles.id"), ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_ref", sa.String(64), nullable=False),
        sa.Column("prize_position", sa.Integer(), nullable=False),
        sa.Column("prize_name", sa.String(200), nullable=False),
        sa.Column("prize_value", sa.Numeric(18, 2), nullable=False),
        sa.Column("draw_order", sa.Integer(), nullable=False),
        sa.Column("selected_date", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("cycle_id", "user_ref", name="uq_cycle_winner_user"),
        sa.UniqueConstraint("cycle_id", "draw_order", name="uq_cycle_winner_order"),
        schema=SCHEMA,
    )


def downgrade() -> None:
    op.drop_table("cycle_winners", schema=SCHEMA)
    op.drop_index("ix_cycle_prize_cycle", table_name="cycle_prizes", schema=SCHEMA)
    op.drop_table("cycle_prizes", schema=SCHEMA)
    op.drop_index("ix_cycle_entry_cycle", table_name="cycle_entries", schema=SCHEMA)
    op.drop_table("cycle_entries", schema=SCHEMA)
    op.drop_index("ix_cycle_status_draw_date", table_name="cycles", schema=SCHEMA)
    op.drop_table("cycles", schema=SCHEMA)


# ============================================================================
# Пояснения «для чайника»:
#   • Схема (DB_SCHEMA_CORE) создаётся IF NOT EXISTS, повтор не ломает БД.
#   • Пустой DB_SCHEMA_CORE: таблицы создаются в схеме по умолчанию.
# ============================================================================
