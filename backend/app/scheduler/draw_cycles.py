# ============================================================================
# Engage Admin: scheduler.draw_cycles
# -----------------------------------------------------------------------------
# Назначение: колбэк задачи «draw». Разыгрывает все призовые циклы, которые
# пора разыгрывать на момент запуска, через DrawEngine.
#
# Канон/инварианты:
#   • Колбэк не принимает аргументов: что разыгрывать, решает сама выборка
#     (status='active', draw_date <= now, победителей нет).
#   • Повторный запуск безопасен: уже разыгранные циклы в выборку не попадают,
#     а гонка двух запусков разрешается условной записью.
#
# ИИ-защиты/самовосстановление:
#   • Сбой одного цикла изолирован внутри DrawEngine.
#   • Сбой выборки пробрасывается в SchedulerService, который логирует его
#     как неуспешный запуск и оставляет задачу включённой.
# ============================================================================
from __future__ import annotations

import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database_core import dispose_engine, get_session_factory
from ..core.logging_core import get_logger
from ..services.draw_service import DrawEngine, DrawReport

logger = get_logger(__name__)


async def run_once(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> DrawReport:
    """Публичная точка для SchedulerService/CLI: один проход розыгрышей."""

    engine = DrawEngine(session_factory or get_session_factory())
    report = await engine.run_draws()
    logger.debug("draw report: %s", report.to_dict())
    return report


async def _main() -> None:
    try:
        await run_once()
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(_main())
