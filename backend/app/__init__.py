# ==============================================================================
# Engage Admin: FastAPI application factory
# ------------------------------------------------------------------------------
# Назначение: создаёт и конфигурирует FastAPI-приложение админ-бэкенда:
# обработчики ошибок, correlation-id middleware, роуты планировщика, health.
#
# Канон/инварианты:
#   • Один SchedulerService на процесс: создаётся здесь, хранится в
#     app.state.scheduler и передаётся роутам через deps.get_scheduler().
#   • lifespan: boot_core() → startup_scheduler() при старте;
#     shutdown_scheduler() → dispose_engine() при остановке.
#
# ИИ-защиты/самовосстановление:
#   • create_app() можно вызывать несколько раз: каждое приложение получает
#     свой планировщик, глобального состояния нет.
#   • Ошибка старта поднимает исключение и останавливает процесс, без «тихих»
#     падений.
# ==============================================================================
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .core import boot_core
from .core.config_core import get_settings
from .core.database_core import db_ping, dispose_engine
from .core.errors_core import setup_exception_handlers
from .core.logging_core import CorrelationIdMiddleware, get_logger
from .routes import register
from .services.scheduler_service import SchedulerService, shutdown_scheduler, startup_scheduler

logger = get_logger(__name__)


def create_app(scheduler: Optional[SchedulerService] = None) -> FastAPI:
    """Создать FastAPI-приложение. scheduler подменяется в тестах."""

    settings = get_settings()
    sched = scheduler or SchedulerService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        boot_core()
        startup_scheduler(sched, settings)
        try:
            yield
        finally:
            await shutdown_scheduler(sched)
            await dispose_engine()
            logger.info("Application shutdown complete")

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.APP_VERSION, lifespan=lifespan)
    app.state.scheduler = sched

    setup_exception_handlers(app)
    app.add_middleware(CorrelationIdMiddleware)
    register(app)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        """Простая проверка живости сервиса без побочных эффектов."""

        return {"status": "ok"}

    @app.get("/health/db", tags=["health"])
    async def health_db() -> JSONResponse:
        """SELECT 1 через пул приложения: 200 ok или 503 unavailable."""

        if await db_ping():
            return JSONResponse(status_code=200, content={"status": "ok"})
        return JSONResponse(status_code=503, content={"status": "unavailable"})

    logger.info("FastAPI app initialised (env=%s)", settings.env_normalized)
    return app


__all__ = ["create_app"]

# ==============================================================================
# Пояснения «для чайника»:
#   • Планировщик стартует вместе с HTTP-сервером; задачи включаются только
#     те, что перечислены в SCHEDULER_ENABLED_JOBS (остальные из админки).
#   • При остановке выполняющиеся задачи получают время на завершение
#     (SCHEDULER_SHUTDOWN_GRACE_SEC), затем закрывается пул БД.
# ==============================================================================
