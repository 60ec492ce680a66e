# -*- coding: utf-8 -*-
# backend/app/services/draw_service.py
# =============================================================================
# Назначение кода:
#   Движок розыгрышей призовых циклов: находит циклы, которые пора разыгрывать,
#   выбирает победителей (несколько призов, несколько единиц каждого, без
#   повторов) и фиксирует результат ровно один раз.
#
# Канон/инварианты:
#   • Призы распределяются по возрастанию position; при равных position
#     сохраняется порядок объявления (стабильная сортировка).
#   • Каждая единица приза разыгрывается равновероятно среди ещё не выигравших
#     заявок (выборка без возвращения по всему циклу, а не по призу).
#   • Пользователь выигрывает в цикле не более одного раза: после выигрыша из
#     пула убираются все его заявки.
#   • Победителей ровно min(сумма quantity, число различных участников).
#   • Результат пишется одной условной транзакцией (см. CyclesCRUD.complete_draw):
#     повторный/параллельный запуск получает конфликт и ничего не меняет.
#
# ИИ-защита/самовосстановление:
#   • Ошибка записи одного цикла логируется и не мешает остальным циклам того
#     же запуска.
#   • Конфликт записи (цикл уже разыгран) трактуется как успешный no-op.
#   • Генератор по умолчанию: random.SystemRandom (не предсказуем по seed);
#     в тестах подставляется random.Random(seed).
#
# Запреты:
#   • Никаких ORDER BY random() в SQL: порядок и равновероятность выбора
#     контролирует только этот модуль.
#   • Нет отмены уже начатого розыгрыша: цикл либо записан целиком, либо нет.
# =============================================================================

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.errors_core import DrawPersistenceConflict, DrawPersistenceFailure
from backend.app.core.logging_core import get_logger
from backend.app.core.utils_core import money, utc_now
from backend.app.crud.cycles_crud import CyclesCRUD
from backend.app.models import Cycle

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# DTO
# -----------------------------------------------------------------------------
class EntryLike(Protocol):
    user_ref: str


class PrizeLike(Protocol):
    position: int
    name: str
    value: Any
    quantity: int


@dataclass(frozen=True)
class WinnerDraft:
    """Победитель до записи в БД (порядок draw_order: 1..N)."""

    user_ref: str
    prize_position: int
    prize_name: str
    prize_value: Decimal
    draw_order: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user_ref,
            "prize": {
                "position": self.prize_position,
                "name": self.prize_name,
                "value": str(self.prize_value),
            },
        }


@dataclass
class DrawReport:
    """Итог одного запуска розыгрышей (для логов и ручного запуска из админки)."""

    started_at: datetime
    eligible: int = 0
    drawn: int = 0
    skipped_empty: int = 0
    conflicts: int = 0
    failures: int = 0
    winners: int = 0
    drawn_cycle_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "eligible": self.eligible,
            "drawn": self.drawn,
            "skipped_empty": self.skipped_empty,
            "conflicts": self.conflicts,
            "failures": self.failures,
            "winners": self.winners,
            "drawn_cycle_ids": list(self.drawn_cycle_ids),
        }


# -----------------------------------------------------------------------------
# Алгоритм выбора
# -----------------------------------------------------------------------------
def select_winners(
    entries: Sequence[EntryLike],
    prizes: Sequence[PrizeLike],
    rng: random.Random,
) -> List[WinnerDraft]:
    """
    Выбрать победителей для одного цикла.

    Пул заявок общий на весь цикл. Для каждой единицы приза берётся
    равновероятный индекс пула (rng.randrange), заявка снимается вместе со
    всеми остальными заявками того же пользователя. Как только пул пуст,
    распределение прекращается.
    """
    pool: List[str] = [entry.user_ref for entry in entries]
    winners: List[WinnerDraft] = []

    for prize in sorted(prizes, key=lambda p: p.position):
        if not pool:
            break
        for _ in range(max(0, int(prize.quantity or 0))):
            if not pool:
                break
            idx = rng.randrange(len(pool))
            user_ref = pool[idx]
            pool = [ref for ref in pool if ref != user_ref]
            winners.append(
                WinnerDraft(
                    user_ref=user_ref,
                    prize_position=int(prize.position),
                    prize_name=str(prize.name),
                    prize_value=money(prize.value),
                    draw_order=len(winners) + 1,
                )
            )
    return winners


# -----------------------------------------------------------------------------
# Движок
# -----------------------------------------------------------------------------
class DrawEngine:
    """
    Проводит розыгрыши по всем циклам, пригодным на момент запуска.

    Каждый цикл пишется в собственной транзакции, чтобы сбой одного не
    откатывал остальные.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._rng = rng or random.SystemRandom()
        self._clock = clock

    async def run_draws(self, now: Optional[datetime] = None) -> DrawReport:
        """
        Разыграть все пригодные циклы. Ошибка выборки пробрасывается (запуск
        целиком неуспешен), ошибки отдельных циклов изолируются.
        """
        now = now or self._clock()
        report = DrawReport(started_at=now)

        async with self._session_factory() as session:
            cycles = await CyclesCRUD(session).find_eligible_cycles(now)
        report.eligible = len(cycles)

        for cycle in cycles:
            try:
                winners = await self.draw_cycle(cycle)
            except DrawPersistenceConflict:
                report.conflicts += 1
                logger.info("Cycle %s already drawn by another run, skip", cycle.id)
                continue
            except DrawPersistenceFailure as exc:
                report.failures += 1
                logger.error(
                    "Draw persistence failed for cycle %s: %s",
                    cycle.id,
                    exc.details.get("reason"),
                    exc_info=exc,
                )
                continue

            if winners is None:
                report.skipped_empty += 1
                continue
            report.drawn += 1
            report.winners += len(winners)
            report.drawn_cycle_ids.append(cycle.id)

        logger.info(
            "Draw run finished: eligible=%d drawn=%d empty=%d conflicts=%d failures=%d",
            report.eligible,
            report.drawn,
            report.skipped_empty,
            report.conflicts,
            report.failures,
        )
        return report

    async def draw_cycle(self, cycle: Cycle) -> Optional[List[WinnerDraft]]:
        """
        Разыграть один цикл (entries и prizes должны быть загружены).

        Возвращает:
          • None, если заявок нет (цикл не трогаем, он останется active);
          • список победителей после успешной записи.
        Исключения:
          • DrawPersistenceConflict: цикл уже не пригоден (разыгран параллельно);
          • DrawPersistenceFailure: сбой хранилища.
        """
        if not cycle.entries:
            logger.info("Cycle %s has no entries, draw skipped", cycle.id)
            return None

        winners = select_winners(cycle.entries, cycle.prizes, self._rng)
        if not winners:
            logger.warning("Cycle %s has no prizes to award, completing without winners", cycle.id)

        completed_at = self._clock()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    written = await CyclesCRUD(session).complete_draw(
                        cycle.id, winners, completed_at
                    )
                    if not written:
                        raise DrawPersistenceConflict(cycle.id)
        except SQLAlchemyError as exc:
            raise DrawPersistenceFailure(cycle.id, str(exc)) from exc

        logger.info(
            "Draw completed for cycle %s (%s), %d winners selected",
            cycle.id,
            cycle.name,
            len(winners),
        )
        return winners


__all__ = ["WinnerDraft", "DrawReport", "DrawEngine", "select_winners"]

# =============================================================================
# Пояснения «для чайника»:
#   • Выбор идёт в Python над уже загруженным пулом заявок; SQL только читает
#     пул и пишет итог.
#   • DrawReport.conflicts > 0 при повторном срабатывании таймера: это норма,
#     победители цикла при этом не меняются.
# =============================================================================
