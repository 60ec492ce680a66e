# -*- coding: utf-8 -*-
# backend/app/models/cycles_models.py
# =============================================================================
# Назначение кода:
#   SQLAlchemy-модели призовых циклов: карточка цикла, заявки участников,
#   призы и зафиксированные победители розыгрыша.
#
# Канон/инварианты:
#   • Статусы цикла: draft|active|completed|cancelled. Переход active → completed
#     односторонний и выполняется только движком розыгрышей.
#   • Победители записываются один раз на цикл; один пользователь не может
#     выиграть в одном цикле дважды (UNIQUE(cycle_id, user_ref)).
#   • draw_order фиксирует порядок распределения призов (1..N).
#   • Деньги (стоимость участия, ценность приза): Numeric(18, 2).
#
# ИИ-защита/самовосстановление:
#   • CHECK-ограничения по статусам и количествам предотвращают «мусорные»
#     состояния ещё на уровне БД.
#   • Индекс (status, draw_date) под выборку «пора разыгрывать».
#
# Запреты:
#   • Никакой логики розыгрыша в моделях: только структура данных.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database_core import Base

# -----------------------------------------------------------------------------
# Константы статусов/типов (строковые ENUM)
# -----------------------------------------------------------------------------

CYCLE_STATUS_ENUM = ("draft", "active", "completed", "cancelled")
CYCLE_TYPE_ENUM = ("draw", "competition", "challenge")

STATUS_DRAFT = "draft"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

# =============================================================================
# МОДЕЛИ
# =============================================================================


class Cycle(Base):
    """
    Карточка призового цикла: сроки, статус и дата розыгрыша.
    """

    __tablename__ = "cycles"
    __table_args__ = (
        CheckConstraint(f"status IN {CYCLE_STATUS_ENUM}", name="cycle_status_check"),
        CheckConstraint(f"type IN {CYCLE_TYPE_ENUM}", name="cycle_type_check"),
        CheckConstraint("entry_fee >= 0", name="cycle_entry_fee_nonneg"),
        Index("ix_cycle_status_draw_date", "status", "draw_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="draw")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_DRAFT)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    draw_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    entry_fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=0)
    max_entries: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Связи грузятся явно (selectinload) в CRUD; неявный SQL запрещён
    entries: Mapped[list["CycleEntry"]] = relationship(
        back_populates="cycle",
        cascade="all, delete-orphan",
        order_by="CycleEntry.id",
        lazy="raise_on_sql",
    )
    prizes: Mapped[list["CyclePrize"]] = relationship(
        back_populates="cycle",
        cascade="all, delete-orphan",
        order_by="CyclePrize.id",
        lazy="raise_on_sql",
    )
    winners: Mapped[list["CycleWinner"]] = relationship(
        back_populates="cycle",
        cascade="all, delete-orphan",
        order_by="CycleWinner.draw_order",
        lazy="raise_on_sql",
    )


class CycleEntry(Base):
    """
    Заявка участника. Один пользователь может иметь несколько заявок:
    каждая увеличивает шанс, но выиграть он может только один раз.
    """

    __tablename__ = "cycle_entries"
    __table_args__ = (Index("ix_cycle_entry_cycle", "cycle_id", "id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cycles.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    entry_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    payment_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True)

    cycle: Mapped["Cycle"] = relationship(back_populates="entries", lazy="raise_on_sql")


class CyclePrize(Base):
    """
    Приз цикла. position задаёт порядок распределения (1 разыгрывается первым),
    quantity: сколько победителей получают этот приз.
    """

    __tablename__ = "cycle_prizes"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="cycle_prize_quantity_nonneg"),
        Index("ix_cycle_prize_cycle", "cycle_id", "position"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cycles.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    cycle: Mapped["Cycle"] = relationship(back_populates="prizes", lazy="raise_on_sql")


class CycleWinner(Base):
    """
    Победитель цикла со снимком приза на момент розыгрыша.
    """

    __tablename__ = "cycle_winners"
    __table_args__ = (
        UniqueConstraint("cycle_id", "user_ref", name="uq_cycle_winner_user"),
        UniqueConstraint("cycle_id", "draw_order", name="uq_cycle_winner_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cycles.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_ref: Mapped[str] = mapped_column(String(64), nullable=False)

    prize_position: Mapped[int] = mapped_column(Integer, nullable=False)
    prize_name: Mapped[str] = mapped_column(String(200), nullable=False)
    prize_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    draw_order: Mapped[int] = mapped_column(Integer, nullable=False)
    selected_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    cycle: Mapped["Cycle"] = relationship(back_populates="winners", lazy="raise_on_sql")


__all__ = [
    "Cycle",
    "CycleEntry",
    "CyclePrize",
    "CycleWinner",
    "CYCLE_STATUS_ENUM",
    "CYCLE_TYPE_ENUM",
    "STATUS_DRAFT",
    "STATUS_ACTIVE",
    "STATUS_COMPLETED",
    "STATUS_CANCELLED",
]

# =============================================================================
# Пояснения (для чайника):
#   • Выборка «пора разыгрывать» идёт по индексу (status, draw_date) и
#     отсутствию строк в cycle_winners.
#   • UNIQUE(cycle_id, user_ref) в cycle_winners: последняя линия обороны
#     против повторного выигрыша одного пользователя.
# =============================================================================
