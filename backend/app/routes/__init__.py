# -*- coding: utf-8 -*-
# backend/app/routes/__init__.py
# =============================================================================
# Назначение кода:
#   Единая точка подключения HTTP-роутов Engage Admin: общий APIRouter
#   (api_router) и функция register(app, prefix="") для фабрики приложения.
#
# Канон/инварианты:
#   • Модуль НЕ выполняет бизнес-логику, только проводка маршрутов.
#   • Каждый модуль роутов сам задаёт свой prefix ("/admin/scheduler", ...).
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, FastAPI

from backend.app.core.logging_core import get_logger
from backend.app.routes.admin import scheduler_routes

logger = get_logger(__name__)

api_router = APIRouter()
api_router.include_router(scheduler_routes.router)

_ATTACHED = ["admin.scheduler_routes"]


def register(app: FastAPI, prefix: str = "") -> None:
    """Регистрирует агрегированный роутер в приложении FastAPI."""
    app.include_router(api_router, prefix=prefix)
    logger.info("routes: registered (prefix=%r): %s", prefix, ",".join(_ATTACHED))


__all__ = ["api_router", "register"]
