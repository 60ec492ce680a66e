# -*- coding: utf-8 -*-
# backend/app/core/config_core.py
# =============================================================================
# Назначение:
#   • Единый конфигурационный модуль Engage Admin (FastAPI + SQLAlchemy async).
#   • Канонический источник настроек: приложение, БД, планировщик, розыгрыши.
#
# Канон / инварианты:
#   1) Расписания задач задаются только cron-выражениями (5 полей, UTC по
#      умолчанию). Невалидное выражение не пропускается валидатором.
#   2) При старте все задачи выключены; включаются только перечисленные в
#      SCHEDULER_ENABLED_JOBS или вручную через админ-API.
#   3) Секреты (DSN, админ-ключ) берём только из ENV, в код не шьём.
#
# ИИ-защита / самодиагностика:
#   • Валидаторы отсекают нулевые/отрицательные интервалы и «битые» cron.
#   • database_url_async() приводит DSN Postgres к asyncpg-формату.
#
# Запреты:
#   • Никаких сетевых вызовов и обращений к БД в этом модуле.
# =============================================================================

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, List, Optional

from croniter import croniter
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Вспомогательные утилиты (локальные, без сетевых вызовов)
# =============================================================================


def _parse_csv(value: object) -> List[str]:
    """Преобразует CSV-строку 'a,b,c' в ['a', 'b', 'c'] (пробелы обрезаются)."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(x).strip() for x in value if str(x).strip()]
    s = str(value).strip()
    if not s:
        return []
    return [item.strip() for item in s.split(",") if item.strip()]


def _unique(items: Iterable[str]) -> List[str]:
    """Возвращает элементы без повторов, сохраняя порядок первого появления."""
    out: List[str] = []
    for item in items:
        if item not in out:
            out.append(item)
    return out


# =============================================================================
# Док-описания полей (используются в Swagger и как подсказки «для чайника»)
# =============================================================================


class _Doc:
    # Приложение
    PROJECT_NAME = "Имя проекта (отображается в Swagger/health)."
    ENV = "Окружение: production/dev/local (нормализуется в prod/dev/local)."
    DEBUG = "Расширенные логи и трассировки (только для dev/local)."
    APP_VERSION = "Версия приложения (попадает в /health)."
    APP_HOST = "Адрес для uvicorn (обычно 0.0.0.0)."
    APP_PORT = "Порт для uvicorn (например, 8000)."

    # БД
    DATABASE_URL = (
        "DSN базы данных. postgresql:// автоматически приводится к "
        "postgresql+asyncpg://; для тестов допустим sqlite+aiosqlite://."
    )
    DB_POOL_SIZE = "Размер пула соединений SQLAlchemy."
    DB_MAX_OVERFLOW = "Дополнительные соединения в пике."
    DB_SCHEMA_CORE = "Схема с таблицами циклов. Пусто: схема по умолчанию."

    # Планировщик
    SCHEDULER_TIMEZONE = "Часовой пояс, в котором вычисляются cron-расписания."
    DRAW_SCHEDULE = "Cron розыгрышей призов (по умолчанию ежедневно в полночь)."
    NOTIFY_SCHEDULE = "Cron рассылки напоминаний (по умолчанию каждые 6 часов)."
    CLEANUP_SCHEDULE = "Cron очистки (по умолчанию воскресенье 02:00)."
    SCHEDULER_ENABLED_JOBS = "Задачи, включаемые при старте (CSV ключей)."
    SCHEDULER_SHUTDOWN_GRACE_SEC = "Сколько ждать завершения текущих запусков при остановке."

    # Задачи
    NOTIFY_LOOKAHEAD_HOURS = "Горизонт напоминаний о ближайших розыгрышах (часы)."
    CLEANUP_RETENTION_DAYS = "Срок хранения завершённых циклов до очистки (дни)."

    # Безопасность
    ADMIN_API_KEY = "Ключ админ-API (маскируется в логах)."


class Settings(BaseSettings):
    """
    Контейнер переменных окружения Engage Admin.

    Важное:
      • Секреты берём только из ENV.
      • Расписания задач проверяются через croniter при загрузке настроек,
        поэтому битое выражение не доживёт до планировщика.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # --------------------------- БАЗОВЫЕ НАСТРОЙКИ ---------------------------
    PROJECT_NAME: str = Field("Engage Admin", description=_Doc.PROJECT_NAME)
    ENV: str = Field("production", description=_Doc.ENV)
    DEBUG: bool = Field(False, description=_Doc.DEBUG)
    APP_VERSION: str = Field("1.0.0", description=_Doc.APP_VERSION)

    APP_HOST: str = Field("0.0.0.0", description=_Doc.APP_HOST)
    APP_PORT: int = Field(8000, description=_Doc.APP_PORT)

    # --------------------------------- БАЗА ----------------------------------
    DATABASE_URL: Optional[str] = Field(None, description=_Doc.DATABASE_URL)
    DB_POOL_SIZE: int = Field(10, description=_Doc.DB_POOL_SIZE)
    DB_MAX_OVERFLOW: int = Field(10, description=_Doc.DB_MAX_OVERFLOW)
    DB_SCHEMA_CORE: Optional[str] = Field("engage_core", description=_Doc.DB_SCHEMA_CORE)

    # ------------------------------ ПЛАНИРОВЩИК ------------------------------
    SCHEDULER_TIMEZONE: str = Field("UTC", description=_Doc.SCHEDULER_TIMEZONE)
    DRAW_SCHEDULE: str = Field("0 0 * * *", description=_Doc.DRAW_SCHEDULE)
    NOTIFY_SCHEDULE: str = Field("0 */6 * * *", description=_Doc.NOTIFY_SCHEDULE)
    CLEANUP_SCHEDULE: str = Field("0 2 * * 0", description=_Doc.CLEANUP_SCHEDULE)
    SCHEDULER_ENABLED_JOBS: str = Field("", description=_Doc.SCHEDULER_ENABLED_JOBS)
    SCHEDULER_SHUTDOWN_GRACE_SEC: float = Field(
        30.0,
        description=_Doc.SCHEDULER_SHUTDOWN_GRACE_SEC,
    )

    # -------------------------------- ЗАДАЧИ ---------------------------------
    NOTIFY_LOOKAHEAD_HOURS: int = Field(24, description=_Doc.NOTIFY_LOOKAHEAD_HOURS)
    CLEANUP_RETENTION_DAYS: int = Field(30, description=_Doc.CLEANUP_RETENTION_DAYS)

    # ------------------------------ БЕЗОПАСНОСТЬ -----------------------------
    ADMIN_API_KEY: Optional[str] = Field(None, description=_Doc.ADMIN_API_KEY)

    # =========================== ВАЛИДАТОРЫ (ИИ-защита) ======================

    @field_validator("DRAW_SCHEDULE", "NOTIFY_SCHEDULE", "CLEANUP_SCHEDULE")
    @classmethod
    def _v_cron(cls, value: str) -> str:
        """Расписание обязано быть валидным cron-выражением."""
        expr = str(value).strip()
        if not croniter.is_valid(expr):
            raise ValueError(f"невалидное cron-выражение: {expr!r}")
        return expr

    @field_validator(
        "DB_POOL_SIZE",
        "NOTIFY_LOOKAHEAD_HOURS",
        "CLEANUP_RETENTION_DAYS",
    )
    @classmethod
    def _v_positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("значение должно быть > 0")
        return value

    @field_validator("SCHEDULER_SHUTDOWN_GRACE_SEC")
    @classmethod
    def _v_grace(cls, value: float) -> float:
        if value < 0:
            raise ValueError("SCHEDULER_SHUTDOWN_GRACE_SEC не может быть < 0")
        return value

    # =========================== Удобные свойства/методы =====================

    @property
    def env_normalized(self) -> str:
        """Нормализует ENV к одному из: prod/dev/local."""
        value = (self.ENV or "").strip().lower()
        if value.startswith("prod") or value == "production":
            return "prod"
        if value.startswith("dev"):
            return "dev"
        if value.startswith("loc") or value in ("test", "testing"):
            return "local"
        return "prod"

    @property
    def is_prod(self) -> bool:
        return self.env_normalized == "prod"

    @property
    def db_schema(self) -> Optional[str]:
        """Пустая строка в ENV означает «без схемы» (например, SQLite в тестах)."""
        return (self.DB_SCHEMA_CORE or "").strip() or None

    @property
    def enabled_jobs_on_start(self) -> List[str]:
        return _unique(_parse_csv(self.SCHEDULER_ENABLED_JOBS))

    def database_url_async(self) -> str:
        """
        Возвращает DSN для SQLAlchemy async:
          postgres://   → postgresql+asyncpg://
          postgresql:// → postgresql+asyncpg:// при отсутствии драйвера.
        Прочие схемы (sqlite+aiosqlite://) возвращаются как есть.
        """
        if not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL не задан (нужен DSN базы данных).")
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Единственная точка получения настроек (кешируется на процесс)."""
    return Settings()


__all__ = ["Settings", "get_settings"]

# =============================================================================
# Пояснения «для чайника»:
#   • Все модули берут настройки через get_settings(), локальных копий нет.
#   • Чтобы включить розыгрыши сразу при старте, задайте
#     SCHEDULER_ENABLED_JOBS=draw (или draw,notifications).
#   • Тесты выставляют DB_SCHEMA_CORE="" и DATABASE_URL=sqlite+aiosqlite://...
# =============================================================================
