# -*- coding: utf-8 -*-
# backend/app/core/database_core.py
# =============================================================================
# Назначение кода:
#   • Единая точка работы с БД Engage Admin (PostgreSQL + asyncpg + SQLAlchemy 2.0).
#   • Создание и конфигурация AsyncEngine и async_sessionmaker.
#   • Безопасная выдача сессий для сервисов и задач планировщика.
#   • Базовые health-утилиты (ping, мягкий реинициализатор).
#
# Канон / инварианты:
#   • Только async-движок (create_async_engine), никаких sync-engine.
#   • DSN берём из Settings.database_url_async(): там единый источник истины.
#   • Сессии expire_on_commit=False (во избежание лишних рефрешей).
#   • Движок создаётся лениво: импорт модуля не требует живой БД.
#
# Запреты:
#   • Никакой бизнес-логики (розыгрыши, статусы циклов) в этом модуле.
#   • Никаких DDL здесь: схема создаётся миграциями Alembic.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Optional

from sqlalchemy import MetaData, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from backend.app.core.config_core import get_settings
from backend.app.core.logging_core import get_logger

logger = get_logger(__name__)
settings = get_settings()


class Base(DeclarativeBase):
    """Единый Declarative Base проекта (схема берётся из DB_SCHEMA_CORE)."""

    metadata = MetaData(schema=settings.db_schema)


# -----------------------------------------------------------------------------
# Глобальные объекты: движок и фабрика сессий
# -----------------------------------------------------------------------------
_engine: Optional[AsyncEngine] = None
_SessionFactory: Optional[async_sessionmaker[AsyncSession]] = None
_engine_lock = asyncio.Lock()


def _create_engine() -> AsyncEngine:
    """
    Создаёт новый AsyncEngine на базе актуальных настроек.

    • pool_pre_ping для раннего обнаружения «умерших» соединений.
    • Параметры пула передаются только серверным СУБД (SQLite их не принимает).
    """
    dsn = settings.database_url_async()
    logger.info("Creating async DB engine (dialect=%s)", dsn.split(":", 1)[0])
    kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not dsn.startswith("sqlite"):
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
    return create_async_engine(dsn, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Строит async_sessionmaker поверх переданного движка.

    • expire_on_commit=False: объекты остаются валидными после commit().
    • autoflush=False: явный контроль flush при необходимости.
    """
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
    )


async def reset_engine() -> None:
    """
    Мягко пересоздаёт движок и фабрику сессий (после серьёзных сбоев
    подключения). Старый движок закрывается через dispose().
    """
    global _engine, _SessionFactory

    async with _engine_lock:
        old_engine = _engine
        try:
            new_engine = _create_engine()
            _SessionFactory = create_session_factory(new_engine)
            _engine = new_engine
            logger.info("DB engine has been reset successfully")
        except Exception:
            logger.exception("Failed to reset DB engine")
            if old_engine is not None:
                _engine = old_engine
            raise
        else:
            if old_engine is not None:
                try:
                    await old_engine.dispose()
                except Exception:  # noqa: BLE001
                    logger.warning("Error during old engine dispose", exc_info=True)


def get_engine() -> AsyncEngine:
    """Возвращает текущий AsyncEngine, создавая его при первом обращении."""
    global _engine, _SessionFactory

    if _engine is None:
        _engine = _create_engine()
        _SessionFactory = create_session_factory(_engine)
        logger.info("DB engine lazily initialized")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Возвращает фабрику сессий (гарантирует, что движок создан)."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = create_session_factory(get_engine())
        logger.info("Session factory initialized")
    return _SessionFactory


async def dispose_engine() -> None:
    """Закрывает пул соединений при остановке процесса."""
    global _engine, _SessionFactory

    if _engine is not None:
        await _engine.dispose()
        logger.info("DB engine disposed")
    _engine = None
    _SessionFactory = None


async def db_ping() -> bool:
    """
    Простейший health-check БД: True, если SELECT 1 успешно прошёл.
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (OperationalError, DBAPIError) as exc:
        logger.error("DB ping failed: DB is not reachable (%s)", exc)
        return False
    except RuntimeError as exc:
        logger.error("DB ping failed: %s", exc)
        return False


__all__ = [
    "AsyncSession",
    "AsyncEngine",
    "Base",
    "get_engine",
    "get_session_factory",
    "create_session_factory",
    "db_ping",
    "reset_engine",
    "dispose_engine",
]

# =============================================================================
# ВАЖНО:
# • Движок не создаётся при импорте, чтобы не ломать Alembic и тесты.
# • Планировщик берёт фабрику сессий через get_session_factory() в момент
#   запуска задачи, а тесты подменяют её своей (SQLite/aiosqlite).
# =============================================================================
