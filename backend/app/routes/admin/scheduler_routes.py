# -*- coding: utf-8 -*-
# backend/app/routes/admin/scheduler_routes.py
# =============================================================================
# Назначение кода:
#   Админские HTTP-ручки планировщика фоновых задач:
#   • посмотреть состояние всех задач (включена, расписание, last/next run),
#   • включить/выключить задачу,
#   • запустить задачу вручную вне расписания.
#
# Канон/инварианты:
#   • Роуты не держат своего состояния: всё через SchedulerService из
#     app.state (deps.get_scheduler).
#   • Неизвестный ключ задачи → 404 {success: false, message: "Job not found"}
#     (UnknownJobError обрабатывается общими хендлерами errors_core).
#   • Ручной запуск подчиняется той же защите от наложения, что и таймер:
#     если задача уже выполняется, ответ ran=false.
#
# Как использует фронтенд админки (пример):
#   1) GET  /admin/scheduler                 → { success, data: {draw: {...}, ...} }
#   2) PUT  /admin/scheduler/draw  {"enabled": true}
#        → { success, message: "Job draw enabled", data: {name, enabled, ...} }
#   3) POST /admin/scheduler/cleanup/run    → { success, message, data: {ran, status} }
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.app.core.logging_core import get_logger
from backend.app.deps import get_scheduler, require_admin_key
from backend.app.schemas.scheduler_schemas import (
    RunJobOut,
    SchedulerStatusOut,
    ToggleJobIn,
    ToggleJobOut,
)
from backend.app.services.scheduler_service import SchedulerService

logger = get_logger(__name__)
router = APIRouter(
    prefix="/admin/scheduler",
    tags=["admin:scheduler"],
    dependencies=[Depends(require_admin_key)],
)


@router.get("", response_model=SchedulerStatusOut)
async def get_scheduler_status(
    scheduler: SchedulerService = Depends(get_scheduler),
) -> SchedulerStatusOut:
    return SchedulerStatusOut(data=scheduler.status())


@router.put("/{job_key}", response_model=ToggleJobOut)
async def toggle_job(
    job_key: str,
    payload: ToggleJobIn,
    scheduler: SchedulerService = Depends(get_scheduler),
) -> ToggleJobOut:
    """Включить/выключить задачу. Повтор того же значения ничего не меняет."""
    view = scheduler.toggle(job_key, payload.enabled)
    state = "enabled" if view["enabled"] else "disabled"
    logger.info("Admin toggled job %s -> %s", job_key, state)
    return ToggleJobOut(
        message=f"Job {job_key} {state}",
        data={
            "name": view["name"],
            "enabled": view["enabled"],
            "schedule": view["schedule"],
            "next_run": view["next_run"],
            "last_run": view["last_run"],
        },
    )


@router.post("/{job_key}/run", response_model=RunJobOut)
async def run_job(
    job_key: str,
    scheduler: SchedulerService = Depends(get_scheduler),
) -> RunJobOut:
    """Запустить задачу сейчас и дождаться завершения вызова."""
    ran = await scheduler.run_now(job_key)
    message = f"Job {job_key} executed" if ran else f"Job {job_key} is already running"
    return RunJobOut(
        message=message,
        data={"ran": ran, "status": scheduler.job_status(job_key)},
    )
