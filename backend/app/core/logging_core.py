# -*- coding: utf-8 -*-
# backend/app/core/logging_core.py
# =============================================================================
# Назначение кода:
#   Централизованная настройка логирования Engage Admin:
#   • формат и хэндлеры;
#   • контекст корреляции (request_id для HTTP, job для планировщика);
#   • защита от утечек секретов.
#
# Канон / инварианты:
#   • Единый стиль логов во всём приложении:
#       - prod: JSON (структурированные логи для агрегаторов),
#       - dev/local: человекочитаемый формат.
#   • Логи не имеют права «ронять» приложение: ошибки фильтра не пробрасываются.
#   • Значимые операции сопровождаем полями env, svc, rid, job.
#
# Запреты:
#   • Никаких сетевых/блокирующих операций в форматерах/фильтрах.
# =============================================================================

from __future__ import annotations

import contextvars
import logging
import sys
import uuid
from typing import Any, Awaitable, Callable, Dict, Mapping, MutableMapping, Optional, Tuple

from pythonjsonlogger.json import JsonFormatter

from backend.app.core.config_core import get_settings

ASGIApp = Callable[
    [Mapping[str, Any], Callable[..., Awaitable[Any]], Callable[..., Awaitable[Any]]],
    Awaitable[Any],
]


# -----------------------------------------------------------------------------
# Контекст корреляции (contextvars): безопасно для асинхронного кода
# -----------------------------------------------------------------------------
_rid_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "rid",
    default=None,
)  # request_id
_job_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "job",
    default=None,
)  # ключ фоновой задачи


def set_request_context(*, request_id: Optional[str] = None) -> None:
    """Присвоить request_id текущему асинхронному контексту."""
    if request_id is not None:
        _rid_var.set(str(request_id))


def set_job_context(job_key: Optional[str]) -> contextvars.Token:
    """
    Привязать ключ задачи к логам текущей asyncio-задачи.

    Возвращает токен, которым контекст откатывается в finally.
    """
    return _job_var.set(job_key)


def reset_job_context(token: contextvars.Token) -> None:
    _job_var.reset(token)


def clear_request_context() -> None:
    _rid_var.set(None)


# -----------------------------------------------------------------------------
# Фильтры логирования
# -----------------------------------------------------------------------------
class ContextFilter(logging.Filter):
    """
    Впрыскивает в запись логера структурированные поля из contextvars и настроек.

    Поля:
      • env: нормализованная среда (local/dev/prod);
      • svc: имя сервиса (PROJECT_NAME);
      • rid: request_id (корреляция запросов);
      • job: ключ фоновой задачи планировщика.
    """

    def __init__(self, env: str, service: str) -> None:
        super().__init__()
        self._env = env
        self._svc = service

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "env"):
            record.env = self._env
        if not hasattr(record, "svc"):
            record.svc = self._svc
        if not hasattr(record, "rid"):
            record.rid = _rid_var.get() or "-"
        if not hasattr(record, "job"):
            record.job = _job_var.get() or "-"
        return True


class RedactingFilter(logging.Filter):
    """
    Маскирует значения секретов из настроек в сообщении и аргументах записи.
    Фильтр никогда не блокирует запись.
    """

    MASK = "****"
    SECRET_KEYS: Tuple[str, ...] = (
        "DATABASE_URL",
        "ADMIN_API_KEY",
    )

    def __init__(self, settings_obj: object) -> None:
        super().__init__()
        self._secrets: list[str] = []
        for key in self.SECRET_KEYS:
            val = getattr(settings_obj, key, None)
            if val and isinstance(val, str):
                self._secrets.append(val)

    def _redact_text(self, text: str) -> str:
        if not text:
            return text
        redacted = text
        for secret in self._secrets:
            if secret in redacted:
                redacted = redacted.replace(secret, self.MASK)
        return redacted

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not self._secrets:
            return True
        try:
            if isinstance(record.msg, str):
                record.msg = self._redact_text(record.msg)
            if isinstance(record.args, tuple):
                record.args = tuple(
                    self._redact_text(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )
        except Exception:  # noqa: BLE001 - фильтр не должен ломать логирование
            pass
        return True


# -----------------------------------------------------------------------------
# Форматеры
# -----------------------------------------------------------------------------
class DevFormatter(logging.Formatter):
    """
    Человекочитаемый формат для local/dev-окружений.

    Пример строки:
    2025-11-22 12:00:00 | INFO     | Engage Admin | backend.app... | rid=- job=draw | msg
    """

    def __init__(self) -> None:
        super().__init__(
            fmt=(
                "%(asctime)s | %(levelname)-8s | %(svc)s | %(name)s | "
                "rid=%(rid)s job=%(job)s | %(message)s"
            ),
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class ProdJsonFormatter(JsonFormatter):
    """JSON-строка с фиксированным набором ключей для агрегатора логов."""

    def process_log_record(self, log_record: Dict[str, Any]) -> Dict[str, Any]:
        base = super().process_log_record(log_record)
        return {
            "time": base.get("asctime"),
            "level": base.get("levelname"),
            "service": base.get("svc"),
            "logger": base.get("name"),
            "env": base.get("env"),
            "rid": base.get("rid"),
            "job": base.get("job"),
            "msg": base.get("message"),
            "exc_info": base.get("exc_info"),
        }


def _make_json_formatter() -> logging.Formatter:
    return ProdJsonFormatter(
        "%(asctime)s %(levelname)s %(svc)s %(name)s %(env)s %(rid)s %(job)s %(message)s"
    )


# -----------------------------------------------------------------------------
# Инициализация логирования
# -----------------------------------------------------------------------------
def setup_logging() -> None:
    """
    Полностью настраивает логирование:

      • root-логгер, формат, уровни;
      • консоль (stdout);
      • фильтры контекста и редактирования;
      • uvicorn/fastapi-логгеры → в root (единый формат);
      • SQLAlchemy-логгер в режиме DEBUG.
    """
    settings = get_settings()
    env = settings.env_normalized
    debug = bool(settings.DEBUG)
    service = settings.PROJECT_NAME

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_engage_console", False):
            root.removeHandler(handler)
    level = logging.DEBUG if debug else logging.INFO
    root.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler._engage_console = True  # type: ignore[attr-defined]
    if env in ("local", "dev"):
        formatter: logging.Formatter = DevFormatter()
    else:
        formatter = _make_json_formatter()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextFilter(env=env, service=service))
    console_handler.addFilter(RedactingFilter(settings_obj=settings))
    root.addHandler(console_handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(level)
        logger.propagate = True

    if debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    logging.getLogger(__name__).debug(
        "Logging initialized (env=%s, level=%s)", env, logging.getLevelName(level)
    )


def get_logger(name: Optional[str] = None, **extra: Any) -> logging.Logger:
    """
    Получить логгер по имени и (опционально) привязать дополнительные поля
    через LoggerAdapter.

    Пример:
        log = get_logger(__name__, component="draw")
    """
    base = logging.getLogger(name)
    if not extra:
        return base
    return logging.LoggerAdapter(base, extra)  # type: ignore[return-value]


# -----------------------------------------------------------------------------
# ASGI-middleware для корреляции
# -----------------------------------------------------------------------------
class CorrelationIdMiddleware:
    """
    Впрыскивает X-Request-ID из HTTP-заголовков в contextvars и возвращает его
    в ответе. Если заголовок отсутствует, генерируется UUID4 (hex).
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[..., Awaitable[Any]],
        send: Callable[..., Awaitable[Any]],
    ) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        raw_headers: MutableMapping[bytes, bytes] = dict(scope.get("headers") or [])
        headers: Dict[str, str] = {
            key.decode().lower(): value.decode() for key, value in raw_headers.items()
        }
        rid = headers.get("x-request-id") or uuid.uuid4().hex
        set_request_context(request_id=rid)

        async def send_wrapper(message: Mapping[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                headers_list: list[Tuple[bytes, bytes]] = list(message.get("headers") or [])
                headers_list.append((b"x-request-id", rid.encode("utf-8")))
                new_message: Dict[str, Any] = dict(message)
                new_message["headers"] = headers_list
                await send(new_message)
                return
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            clear_request_context()


# -----------------------------------------------------------------------------
# Автоконфигурация при импорте
# -----------------------------------------------------------------------------
setup_logging()

__all__ = [
    "setup_logging",
    "get_logger",
    "set_request_context",
    "clear_request_context",
    "set_job_context",
    "reset_job_context",
    "CorrelationIdMiddleware",
]
# =============================================================================
# Пояснения «для чайника»:
#   • В dev/local вы увидите читаемые строки; в prod: структурированный JSON.
#   • Каждая строка лога фоновой задачи содержит job=<ключ>, поэтому ошибки
#     розыгрыша легко отфильтровать от уведомлений.
#   • Секреты (DSN, админ-ключ) в логах автоматически заменяются на "****".
# =============================================================================
