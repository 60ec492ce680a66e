# -*- coding: utf-8 -*-
# backend/app/core/__init__.py
# =============================================================================
# Назначение кода:
# Единая точка входа ядра Engage Admin: загрузка настроек, первичная
# инициализация логирования и стартовая диагностика конфигурации
# (boot_core/core_health) для фабрики приложения.
#
# Канон/инварианты (важно):
# • Источником истины служит config_core.get_settings(): никаких локальных
#   дублей констант здесь не создаём.
#
# ИИ-защита/самовосстановление:
# • boot_core() всегда возвращает диагностический словарь и не роняет
#   процесс: проблемы конфигурации видны в логах и в админке.
# • core_health() проверяет «минимально достаточный» набор настроек.
#
# Запреты:
# • Не импортируем тяжёлые слои (CRUD/Services/модели) и не ходим в БД.
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from .config_core import get_settings
from .logging_core import get_logger
from .utils_core import utc_now

# Версия ядра (повышать при несовместимых изменениях ядра)
CORE_VERSION = "1.0.0"

logger = get_logger(__name__)

__all__ = [
    "CORE_VERSION",
    "get_settings",
    "boot_core",
    "core_health",
]


def boot_core() -> Dict[str, Any]:
    """
    Стартовая инициализация ядра: пишет диагностический лог и возвращает
    сводку {timestamp_utc, core_version, health}.
    """
    settings = get_settings()
    logger.info(
        "Engage core boot: version=%s env=%s schema=%s",
        CORE_VERSION,
        settings.env_normalized,
        settings.db_schema or "-",
    )

    health = core_health()
    if not health["ok"]:
        logger.warning("Core health warnings: %s", health["errors"])

    return {
        "timestamp_utc": utc_now().isoformat(),
        "core_version": CORE_VERSION,
        "health": health,
    }


def core_health() -> Dict[str, Any]:
    """
    Быстрые sanity-checks настроек без исключений.

    Возвращает:
        dict: { ok: bool, errors: List[str], snapshot: Dict[str, Any] }
    """
    settings = get_settings()
    errors: List[str] = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL must be set.")

    for field_name in ("DRAW_SCHEDULE", "NOTIFY_SCHEDULE", "CLEANUP_SCHEDULE"):
        expr = getattr(settings, field_name)
        if not croniter.is_valid(expr):
            errors.append(f"{field_name} is not a valid cron expression: {expr!r}.")

    tz_name = settings.SCHEDULER_TIMEZONE
    if tz_name and tz_name.upper() != "UTC":
        try:
            ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"SCHEDULER_TIMEZONE is unknown: {tz_name!r}.")

    snapshot = {
        # чувствительные данные (DSN, ключи) сюда не выводим
        "PROJECT_NAME": settings.PROJECT_NAME,
        "ENV": settings.env_normalized,
        "DB_SCHEMA_CORE": settings.db_schema,
        "SCHEDULER_TIMEZONE": tz_name,
        "SCHEDULER_ENABLED_JOBS": settings.enabled_jobs_on_start,
        "DRAW_SCHEDULE": settings.DRAW_SCHEDULE,
        "NOTIFY_SCHEDULE": settings.NOTIFY_SCHEDULE,
        "CLEANUP_SCHEDULE": settings.CLEANUP_SCHEDULE,
    }

    return {"ok": not errors, "errors": errors, "snapshot": snapshot}


# =============================================================================
# Пояснения:
# • boot_core() вызывается из lifespan приложения до старта планировщика.
# • Этот __init__ не дублирует конфиг, только экспортирует get_settings и
#   диагностические функции.
# =============================================================================
