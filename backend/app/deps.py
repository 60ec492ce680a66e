# -*- coding: utf-8 -*-
# backend/app/deps.py
# =============================================================================
# Engage Admin: Общие зависимости FastAPI: планировщик процесса и допуск
#                 к админ-API по ключу.
# -----------------------------------------------------------------------------
# Канон/требования:
#   • Планировщик один на процесс и живёт в app.state.scheduler; роуты
#     получают его только через get_scheduler().
#   • Если ADMIN_API_KEY задан, админ-роуты требуют заголовок X-Admin-Api-Key.
#
# Этот модуль НЕ делает бизнес-логику, только инфраструктуру.
# =============================================================================
from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from backend.app.core.config_core import get_settings
from backend.app.core.logging_core import get_logger
from backend.app.services.scheduler_service import SchedulerService

logger = get_logger(__name__)


def get_scheduler(request: Request) -> SchedulerService:
    """SchedulerService, созданный фабрикой приложения."""
    scheduler: Optional[SchedulerService] = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduler is not available",
        )
    return scheduler


async def require_admin_key(
    x_admin_api_key: Optional[str] = Header(default=None, alias="X-Admin-Api-Key"),
) -> None:
    """Пропускает всех, если ключ не настроен; иначе сверяет заголовок."""
    expected = get_settings().ADMIN_API_KEY
    if not expected:
        return
    if x_admin_api_key and hmac.compare_digest(expected, x_admin_api_key):
        return
    logger.warning("Admin API request rejected: missing or invalid key")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Admin API key required",
    )


__all__ = ["get_scheduler", "require_admin_key"]
