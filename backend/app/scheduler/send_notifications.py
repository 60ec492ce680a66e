# ============================================================================
# Engage Admin: scheduler.send_notifications
# -----------------------------------------------------------------------------
# Назначение: колбэк задачи «notifications». Находит активные циклы, розыгрыш
# которых наступит в ближайшие NOTIFY_LOOKAHEAD_HOURS, и пишет по каждому
# строку-напоминание в лог.
#
# Канон/инварианты:
#   • Только чтение: канал доставки (push/e-mail) не подключён, данные не
#     меняются, поэтому повтор запуска ничего не ломает.
# ============================================================================
from __future__ import annotations

from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config_core import get_settings
from ..core.database_core import get_session_factory
from ..core.logging_core import get_logger
from ..core.utils_core import iso_or_none, utc_now
from ..crud.cycles_crud import CyclesCRUD

logger = get_logger(__name__)


async def run_once(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> int:
    """Один проход напоминаний. Возвращает число найденных циклов."""

    settings = get_settings()
    now = utc_now()
    until = now + timedelta(hours=settings.NOTIFY_LOOKAHEAD_HOURS)

    factory = session_factory or get_session_factory()
    async with factory() as session:
        upcoming = await CyclesCRUD(session).list_upcoming_draws(now, until)

    for cycle in upcoming:
        logger.info(
            "Reminder: cycle %s (%s) draws at %s",
            cycle.id,
            cycle.name,
            iso_or_none(cycle.draw_date),
        )
    logger.info("Notifications pass finished: %d upcoming draws", len(upcoming))
    return len(upcoming)
