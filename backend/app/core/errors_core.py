# -*- coding: utf-8 -*-
# backend/app/core/errors_core.py
# =============================================================================
# Назначение кода:
#   • Единый слой ошибок/исключений Engage Admin.
#   • Канонические коды ошибок для админ-панели и логов.
#   • Унифицированные JSON-ответы для FastAPI: {success: false, error, message}.
#
# Канон / инварианты:
#   • Сервисы бросают ТОЛЬКО доменные исключения из этого модуля.
#   • Клиенту никогда не утекают технические детали (stack trace, DSN).
#   • Конфликт при сохранении розыгрыша (DrawPersistenceConflict) означает
#     «цикл уже разыгран другим запуском»: это не ошибка, а идемпотентность.
#   • Сбой хранилища (DrawPersistenceFailure) изолируется одним циклом и
#     не поднимается выше движка розыгрышей.
#
# Запреты:
#   • Не включать сюда бизнес-логику (выбор победителей, расписания и т.п.).
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, cast

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.app.core.logging_core import get_logger

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Базовая доменная ошибка
# -----------------------------------------------------------------------------
@dataclass(eq=False)
class EngageError(Exception):
    """
    Базовое доменное исключение.

    Поля:
      • code: стабильный машинный код ошибки (snake_case).
      • message: короткое безопасное сообщение для клиента.
      • http_status: HTTP код по умолчанию.
      • details: безопасные детали (без секретов), опционально.
    """

    code: str
    message: str
    http_status: int = status.HTTP_400_BAD_REQUEST
    details: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


# -----------------------------------------------------------------------------
# Доменные ошибки
# -----------------------------------------------------------------------------
class NotFoundError(EngageError):
    """Ресурс не найден (задача планировщика, цикл и т.п.)."""

    def __init__(
        self,
        message: str = "Resource not found.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="not_found",
            message=message,
            http_status=status.HTTP_404_NOT_FOUND,
            details=details or {},
        )


class UnknownJobError(NotFoundError):
    """Обращение к задаче планировщика, которой нет в реестре."""

    def __init__(self, job_key: str) -> None:
        super().__init__("Job not found", details={"job": job_key})
        self.job_key = job_key


class DrawPersistenceConflict(EngageError):
    """Условная запись результата не прошла: цикл уже разыгран."""

    def __init__(self, cycle_id: int) -> None:
        super().__init__(
            code="draw_conflict",
            message="Cycle already drawn.",
            http_status=status.HTTP_409_CONFLICT,
            details={"cycle_id": cycle_id},
        )
        self.cycle_id = cycle_id


class DrawPersistenceFailure(EngageError):
    """Хранилище недоступно или отклонило запись результата розыгрыша."""

    def __init__(self, cycle_id: int, reason: str) -> None:
        super().__init__(
            code="draw_persistence_failure",
            message="Failed to persist draw result.",
            http_status=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"cycle_id": cycle_id, "reason": reason},
        )
        self.cycle_id = cycle_id


# -----------------------------------------------------------------------------
# Нормализация исключений → (status_code, payload)
# -----------------------------------------------------------------------------
def normalize_exception(exc: BaseException) -> Tuple[int, Dict[str, Any]]:
    """
    Приводит произвольное исключение к каноническому HTTP-ответу.

    Правила:
      • EngageError   → свой http_status + to_payload().
      • HTTPException → status_code + {"success": false, "error": "http_error", ...}.
      • Любая другая  → 500 + {"error": "internal_error"} (без деталей).
    """
    if isinstance(exc, EngageError):
        return exc.http_status, exc.to_payload()

    if isinstance(exc, StarletteHTTPException):
        details: Dict[str, Any] = {}
        if isinstance(exc.detail, str):
            msg = exc.detail
        elif isinstance(exc.detail, dict):
            details = cast(Dict[str, Any], exc.detail)
            msg = details.get("message") or details.get("detail") or "HTTP error."
        else:
            msg = "HTTP error."
        payload: Dict[str, Any] = {
            "success": False,
            "error": "http_error",
            "message": msg,
        }
        if details:
            payload["details"] = details
        return exc.status_code, payload

    logger.error("Unhandled exception: %s", type(exc).__name__, exc_info=exc)
    return (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {
            "success": False,
            "error": "internal_error",
            "message": "Internal server error.",
        },
    )


# -----------------------------------------------------------------------------
# FastAPI-хендлеры исключений
# -----------------------------------------------------------------------------
async def engage_error_handler(request: Request, exc: EngageError) -> JSONResponse:
    status_code, payload = normalize_exception(exc)
    logger.warning(
        "EngageError handled: %s %s -> %s",
        request.url.path,
        exc.code,
        status_code,
    )
    return JSONResponse(status_code=status_code, content=payload)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    status_code, payload = normalize_exception(exc)
    return JSONResponse(status_code=status_code, content=payload, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Обработчик «на всё остальное»: stack trace в лог, клиенту internal_error.
    """
    status_code, payload = normalize_exception(exc)
    logger.error(
        "Unhandled exception handled by generic handler: %s (%s)",
        request.url.path,
        type(exc).__name__,
    )
    return JSONResponse(status_code=status_code, content=payload)


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Подключает обработчики исключений. Вызывать один раз при создании приложения.
    """
    app.add_exception_handler(EngageError, engage_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
    logger.debug("Exception handlers registered for EngageError/HTTPException/Exception")


__all__ = [
    "EngageError",
    "NotFoundError",
    "UnknownJobError",
    "DrawPersistenceConflict",
    "DrawPersistenceFailure",
    "normalize_exception",
    "setup_exception_handlers",
]

# =============================================================================
# Пояснения «для чайника»:
#   • Если в сервисе что-то пошло не так по бизнес-логике, бросайте EngageError
#     (или наследника), а не голый HTTPException: админка увидит стабильный
#     error и message.
#   • DrawPersistenceConflict и DrawPersistenceFailure живут внутри движка
#     розыгрышей и до HTTP обычно не доходят.
# =============================================================================
