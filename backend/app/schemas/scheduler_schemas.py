# -*- coding: utf-8 -*-
# backend/app/schemas/scheduler_schemas.py
# =============================================================================
# Назначение кода:
# Pydantic-схемы админ-раздела «Планировщик»: статус задач, включение/
# выключение задачи, ручной запуск.
#
# Канон / инварианты:
# • Все ответы в конверте {success, message?, data}.
# • Даты наружу: ISO-8601 в UTC; nextRun = null у выключенной задачи.
# • Наружу поля в camelCase (lastRun, nextRun, lastError): их ждёт
#   клиент админки; внутри модели имена snake_case.
#
# Запреты:
# • В схемах нет бизнес-логики, только форма данных.
# =============================================================================

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatusOut(BaseModel):
    """Снимок состояния одной задачи."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    schedule: str
    enabled: bool
    last_run: Optional[str] = Field(default=None, alias="lastRun")
    next_run: Optional[str] = Field(default=None, alias="nextRun")
    running: bool = False
    runs: int = 0
    failures: int = 0
    skipped: int = 0
    last_error: Optional[str] = Field(default=None, alias="lastError")


class SchedulerStatusOut(BaseModel):
    success: bool = True
    data: Dict[str, JobStatusOut]


class ToggleJobIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(..., description="true: включить, false: выключить")


class ToggledJobOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    enabled: bool
    schedule: str
    next_run: Optional[str] = Field(default=None, alias="nextRun")
    last_run: Optional[str] = Field(default=None, alias="lastRun")


class ToggleJobOut(BaseModel):
    success: bool = True
    message: str
    data: ToggledJobOut


class RunJobData(BaseModel):
    ran: bool
    status: JobStatusOut


class RunJobOut(BaseModel):
    success: bool = True
    message: str
    data: RunJobData


__all__ = [
    "JobStatusOut",
    "SchedulerStatusOut",
    "ToggleJobIn",
    "ToggledJobOut",
    "ToggleJobOut",
    "RunJobData",
    "RunJobOut",
]
