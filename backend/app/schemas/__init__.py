# -*- coding: utf-8 -*-
# backend/app/schemas/__init__.py
# =============================================================================
# Назначение кода:
# Фасад Pydantic-схем Engage Admin: единый импорт
#     from backend.app.schemas import JobStatusOut, ToggleJobIn, ...
#
# Канон / инварианты:
# • Здесь НЕТ бизнес-логики, только агрегация схем.
# =============================================================================

from __future__ import annotations

from .scheduler_schemas import (
    JobStatusOut,
    RunJobData,
    RunJobOut,
    SchedulerStatusOut,
    ToggledJobOut,
    ToggleJobIn,
    ToggleJobOut,
)

__all__ = [
    "JobStatusOut",
    "SchedulerStatusOut",
    "ToggleJobIn",
    "ToggledJobOut",
    "ToggleJobOut",
    "RunJobData",
    "RunJobOut",
]
