# -*- coding: utf-8 -*-
# backend/app/core/utils_core.py
# =============================================================================
# Назначение:
#   • Базовые утилиты уровня "core" без зависимостей от FastAPI/SQLAlchemy.
#   • Время/таймстемпы в UTC (SQLite отдаёт naive datetime, Postgres: aware).
#   • Работа с Decimal для денежных значений призов.
#
# Канон:
#   • Все моменты времени внутри приложения aware и в UTC.
#   • Все функции чистые: без сетевых вызовов и без побочных эффектов.
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

NumberLike = Union[str, int, float, Decimal]


# -----------------------------------------------------------------------------
# Время / таймстемпы
# -----------------------------------------------------------------------------
def utc_now() -> datetime:
    """Текущее время в UTC с tzinfo=UTC."""
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Приводит datetime к aware UTC. Naive-значения считаются UTC
    (так их хранит SQLite при DateTime(timezone=True)).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_or_none(value: Optional[datetime]) -> Optional[str]:
    """ISO-строка в UTC или None (для JSON-ответов и логов)."""
    aware = ensure_utc(value)
    return aware.isoformat() if aware is not None else None


# -----------------------------------------------------------------------------
# Decimal helpers
# -----------------------------------------------------------------------------
def decimal_from(value: NumberLike) -> Decimal:
    """
    Безопасно приводит значение к Decimal.
    float приводим через str(), чтобы минимизировать бинарные артефакты.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def money(value: Optional[NumberLike], decimals: int = 2) -> Decimal:
    """
    Денежное значение приза с фиксированной точностью (HALF_UP).
    None и мусор превращаются в 0.
    """
    q = Decimal(1).scaleb(-decimals)
    if value is None:
        return Decimal(0).quantize(q)
    try:
        return decimal_from(value).quantize(q, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return Decimal(0).quantize(q)


__all__ = ["utc_now", "ensure_utc", "iso_or_none", "decimal_from", "money"]
