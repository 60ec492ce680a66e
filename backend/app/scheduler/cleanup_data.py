# ============================================================================
# Engage Admin: scheduler.cleanup_data
# -----------------------------------------------------------------------------
# Назначение: колбэк задачи «cleanup». Считает завершённые и отменённые циклы
# старше срока хранения (CLEANUP_RETENTION_DAYS) и пишет отчёт в лог.
#
# Канон/инварианты:
#   • Ничего не удаляет: результаты розыгрышей остаются в БД, задача только
#     отчитывается о кандидатах на архивацию.
# ============================================================================
from __future__ import annotations

from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config_core import get_settings
from ..core.database_core import get_session_factory
from ..core.logging_core import get_logger
from ..core.utils_core import utc_now
from ..crud.cycles_crud import CyclesCRUD

logger = get_logger(__name__)


async def run_once(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> int:
    """Один проход очистки. Возвращает число циклов старше срока хранения."""

    settings = get_settings()
    cutoff = utc_now() - timedelta(days=settings.CLEANUP_RETENTION_DAYS)

    factory = session_factory or get_session_factory()
    async with factory() as session:
        stale = await CyclesCRUD(session).count_finished_before(cutoff)

    logger.info(
        "Cleanup pass finished: %d finished cycles older than %s",
        stale,
        cutoff.date().isoformat(),
    )
    return stale
