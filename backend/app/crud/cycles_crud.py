# -*- coding: utf-8 -*-
# backend/app/crud/cycles_crud.py
# =============================================================================
# Назначение:
#   • Шлюз хранения призовых циклов для движка розыгрышей и фоновых задач:
#     выборка «пора разыгрывать», условная запись результата, счётчики для
#     напоминаний и очистки.
#
# Канон/инварианты:
#   • Цикл пригоден к розыгрышу, только если status='active', draw_date <= now
#     и в cycle_winners нет ни одной строки по этому циклу.
#   • complete_draw() пишет результат ОДНИМ условным UPDATE: тот же предикат
#     пригодности проверяется внутри транзакции записи. Если строка уже не
#     подходит (другой запуск успел раньше), ничего не пишется и возвращается
#     False. Это и есть гарантия «не более одного розыгрыша на цикл».
#
# ИИ-защита/самовосстановление:
#   • Связи грузятся явно (selectinload), неявные ленивые запросы запрещены
#     моделью (lazy="raise_on_sql").
#
# Запреты:
#   • CRUD не выбирает победителей и не коммитит: транзакцией управляет сервис.
# =============================================================================
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence

from sqlalchemy import Select, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.models import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    Cycle,
    CycleWinner,
)

if TYPE_CHECKING:
    from backend.app.services.draw_service import WinnerDraft


def _has_winners():
    return exists(select(CycleWinner.id).where(CycleWinner.cycle_id == Cycle.id))


class CyclesCRUD:
    """CRUD-обёртка над циклами без логики выбора победителей."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_cycle(self, cycle_id: int) -> Cycle | None:
        """Цикл вместе с заявками, призами и победителями."""

        stmt: Select[tuple[Cycle]] = (
            select(Cycle)
            .where(Cycle.id == int(cycle_id))
            .options(
                selectinload(Cycle.entries),
                selectinload(Cycle.prizes),
                selectinload(Cycle.winners),
            )
        )
        return await self.session.scalar(stmt)

    async def find_eligible_cycles(self, now: datetime) -> list[Cycle]:
        """Циклы, которые пора разыгрывать (самые ранние draw_date первыми)."""

        stmt: Select[tuple[Cycle]] = (
            select(Cycle)
            .where(
                Cycle.status == STATUS_ACTIVE,
                Cycle.draw_date.is_not(None),
                Cycle.draw_date <= now,
                ~_has_winners(),
            )
            .options(selectinload(Cycle.entries), selectinload(Cycle.prizes))
            .order_by(Cycle.draw_date.asc(), Cycle.id.asc())
        )
        rows = await self.session.scalars(stmt)
        return list(rows)

    async def complete_draw(
        self,
        cycle_id: int,
        winners: Sequence["WinnerDraft"],
        completed_at: datetime,
    ) -> bool:
        """
        Атомарно перевести цикл в completed и записать победителей.

        Возвращает False, если цикл уже не пригоден (разыгран/отменён
        параллельно): в этом случае в сессию ничего не добавлено.
        """

        stmt = (
            update(Cycle)
            .where(
                Cycle.id == int(cycle_id),
                Cycle.status == STATUS_ACTIVE,
                ~_has_winners(),
            )
            .values(
                status=STATUS_COMPLETED,
                completed_at=completed_at,
                updated_at=completed_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False

        self.session.add_all(
            [
                CycleWinner(
                    cycle_id=int(cycle_id),
                    user_ref=w.user_ref,
                    prize_position=w.prize_position,
                    prize_name=w.prize_name,
                    prize_value=w.prize_value,
                    draw_order=w.draw_order,
                    selected_date=completed_at,
                )
                for w in winners
            ]
        )
        await self.session.flush()
        return True

    async def list_upcoming_draws(self, now: datetime, until: datetime) -> list[Cycle]:
        """Активные неразыгранные циклы с draw_date в полуинтервале (now, until]."""

        stmt: Select[tuple[Cycle]] = (
            select(Cycle)
            .where(
                Cycle.status == STATUS_ACTIVE,
                Cycle.draw_date > now,
                Cycle.draw_date <= until,
                ~_has_winners(),
            )
            .order_by(Cycle.draw_date.asc(), Cycle.id.asc())
        )
        rows = await self.session.scalars(stmt)
        return list(rows)

    async def count_finished_before(self, cutoff: datetime) -> int:
        """Сколько завершённых/отменённых циклов старше cutoff."""

        finished_at = func.coalesce(Cycle.completed_at, Cycle.updated_at)
        stmt = select(func.count(Cycle.id)).where(
            Cycle.status.in_((STATUS_COMPLETED, STATUS_CANCELLED)),
            finished_at < cutoff,
        )
        total: Optional[int] = await self.session.scalar(stmt)
        return int(total or 0)


__all__ = ["CyclesCRUD"]

# ============================================================================
# Пояснения «для чайника»:
#   • Два параллельных запуска розыгрыша могут оба увидеть цикл в
#     find_eligible_cycles(), но записать результат сможет только один:
#     второй UPDATE не найдёт строку со status='active' и вернёт rowcount=0.
#   • В PostgreSQL второй UPDATE ждёт блокировку строки, а затем заново
#     проверяет WHERE, поэтому гонка «оба записали» невозможна.
# ============================================================================
