# -*- coding: utf-8 -*-
# backend/app/models/__init__.py
# =============================================================================
# Назначение кода:
# Единая точка входа слоя моделей Engage Admin. Централизует:
#  • загрузку ORM-базиса (Base, схема БД),
#  • реестр MODEL_REGISTRY для удобного доступа к классам моделей,
#  • лёгкую диагностику полноты набора таблиц (models_health).
#
# Запреты:
#  • Не размещать в __init__ бизнес-операции, DDL/DML и «create_all()».
# =============================================================================

from __future__ import annotations

import inspect
from typing import Dict, List, Tuple, Type

from ..core.database_core import Base
from ..core.logging_core import get_logger
from . import cycles_models
from .cycles_models import (
    CYCLE_STATUS_ENUM,
    CYCLE_TYPE_ENUM,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_DRAFT,
    Cycle,
    CycleEntry,
    CyclePrize,
    CycleWinner,
)

logger = get_logger(__name__)


def _collect_model_classes(module) -> Dict[str, Type[Base]]:
    """{ClassName: Class} для всех моделей модуля с объявленным __tablename__."""
    registry: Dict[str, Type[Base]] = {}
    for name, obj in vars(module).items():
        if inspect.isclass(obj) and issubclass(obj, Base) and hasattr(obj, "__tablename__"):
            registry[name] = obj
    return registry


MODEL_REGISTRY: Dict[str, Type[Base]] = _collect_model_classes(cycles_models)


def list_models() -> List[Tuple[str, str]]:
    """Пары (ClassName, __tablename__) всех моделей, для админ-диагностики."""
    return [
        (cls_name, cls.__tablename__)
        for cls_name, cls in sorted(MODEL_REGISTRY.items(), key=lambda kv: kv[0].lower())
    ]


def models_health() -> Dict[str, object]:
    """
    Проверяет, что все таблицы, нужные движку розыгрышей, объявлены.
    """
    required = ["Cycle", "CycleEntry", "CyclePrize", "CycleWinner"]
    missing = [name for name in required if name not in MODEL_REGISTRY]
    if missing:
        logger.warning("models_health: missing=%s", missing)
    return {
        "ok": not missing,
        "missing_classes": missing,
        "present": list_models(),
        "schema": Base.metadata.schema,
    }


__all__ = [
    "Base",
    "MODEL_REGISTRY",
    "list_models",
    "models_health",
    "Cycle",
    "CycleEntry",
    "CyclePrize",
    "CycleWinner",
    "CYCLE_STATUS_ENUM",
    "CYCLE_TYPE_ENUM",
    "STATUS_DRAFT",
    "STATUS_ACTIVE",
    "STATUS_COMPLETED",
    "STATUS_CANCELLED",
]
