# -*- coding: utf-8 -*-
# backend/app/services/scheduler_service.py
# =============================================================================
# Назначение кода:
#   Централизованный планировщик фоновых задач Engage Admin: draw,
#   notifications, cleanup. Каждая задача живёт по своему cron-расписанию,
#   может быть включена/выключена из админки и запущена вручную.
#
# Канон/инварианты:
#   • При init() все задачи выключены, таймеров нет. Таймер есть тогда и
#     только тогда, когда задача включена.
#   • Включение считает next_run от текущего времени: пропущенные за время
#     простоя срабатывания не «догоняются».
#   • Одновременно выполняется не более одного вызова колбэка задачи.
#     Срабатывание во время выполнения пропускается (skipped), а не ставится
#     в очередь.
#   • last_run = время начала вызова; пишется и при успехе, и при ошибке.
#   • toggle()/status() синхронны и выполняются в потоке event loop.
#   • После возврата toggle(key, False) новое срабатывание не начнётся,
#     даже если таймер уже создал для него задачу.
#
# ИИ-защита/самовосстановление:
#   • Исключение колбэка ловится на границе invoke(): логируется с ключом
#     задачи и временем старта, считается в failures/last_error. Задача
#     остаётся включённой, остальные задачи не затрагиваются.
#   • Срабатывание запускает вызов отдельной asyncio-задачей, поэтому таймер
#     держит ритм расписания независимо от длительности вызова.
#   • shutdown() даёт выполняющимся вызовам SCHEDULER_SHUTDOWN_GRACE_SEC на
#     завершение, затем отменяет оставшиеся.
#   • Включение во время shutdown() игнорируется: после остановки у сервиса
#     нет живых таймеров.
#   • Ошибка самого таймера логируется, next_run пересчитывается от текущего
#     времени, задача остаётся включённой.
#
# Запреты:
#   • Планировщик не ходит в БД: вся работа в колбэках scheduler/*.py.
#   • Нет глобального экземпляра: сервис создаёт приложение (app.state).
# =============================================================================

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set
from zoneinfo import ZoneInfo

from croniter import croniter

from backend.app.core.config_core import Settings, get_settings
from backend.app.core.errors_core import UnknownJobError
from backend.app.core.logging_core import get_logger, reset_job_context, set_job_context
from backend.app.core.utils_core import ensure_utc, iso_or_none, utc_now
from backend.app.scheduler import cleanup_data, draw_cycles, send_notifications

logger = get_logger(__name__)

# Сигнатура колбэка задачи: async def run_once() -> Any
JobCallback = Callable[[], Awaitable[Any]]
SleepFunc = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]

JOB_DRAW = "draw"
JOB_NOTIFICATIONS = "notifications"
JOB_CLEANUP = "cleanup"


# -----------------------------------------------------------------------------
# Описание задач
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class JobDefinition:
    """Неизменяемое описание задачи: ключ, подпись для админки, cron."""

    key: str
    name: str
    description: str
    schedule: str

    def __post_init__(self) -> None:
        if not croniter.is_valid(self.schedule):
            raise ValueError(f"invalid cron expression for job '{self.key}': {self.schedule!r}")


def default_job_definitions(settings: Optional[Settings] = None) -> List[JobDefinition]:
    """
    Три стандартные задачи. Расписания берутся из настроек
    (DRAW_SCHEDULE / NOTIFY_SCHEDULE / CLEANUP_SCHEDULE).
    """
    s = settings or get_settings()
    return [
        JobDefinition(
            key=JOB_DRAW,
            name="Prize Draw",
            description="Runs scheduled prize draws",
            schedule=s.DRAW_SCHEDULE,
        ),
        JobDefinition(
            key=JOB_NOTIFICATIONS,
            name="Notifications",
            description="Sends scheduled notifications and reminders",
            schedule=s.NOTIFY_SCHEDULE,
        ),
        JobDefinition(
            key=JOB_CLEANUP,
            name="Data Cleanup",
            description="Cleans up old data and logs",
            schedule=s.CLEANUP_SCHEDULE,
        ),
    ]


def default_job_callbacks() -> Dict[str, JobCallback]:
    """Ключ задачи → run_once() соответствующего модуля scheduler/*."""
    return {
        JOB_DRAW: draw_cycles.run_once,
        JOB_NOTIFICATIONS: send_notifications.run_once,
        JOB_CLEANUP: cleanup_data.run_once,
    }


def _missing_callback(job_key: str) -> JobCallback:
    async def _noop() -> None:
        logger.warning("Job %s has no handler, skip", job_key)

    return _noop


# -----------------------------------------------------------------------------
# Состояние задачи
# -----------------------------------------------------------------------------
@dataclass(eq=False)
class JobRuntime:
    definition: JobDefinition
    callback: JobCallback
    enabled: bool = False
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    timer: Optional["asyncio.Task[None]"] = None
    running: bool = False
    runs: int = 0
    failures: int = 0
    skipped: int = 0
    last_error: Optional[str] = None
    last_duration_sec: Optional[float] = None

    @property
    def key(self) -> str:
        return self.definition.key

    def view(self) -> Dict[str, Any]:
        """Снимок для status()/админки (даты в ISO UTC)."""
        return {
            "name": self.definition.name,
            "description": self.definition.description,
            "schedule": self.definition.schedule,
            "enabled": self.enabled,
            "last_run": iso_or_none(self.last_run),
            "next_run": iso_or_none(self.next_run) if self.enabled else None,
            "running": self.running,
            "runs": self.runs,
            "failures": self.failures,
            "skipped": self.skipped,
            "last_error": self.last_error,
        }


# -----------------------------------------------------------------------------
# Планировщик
# -----------------------------------------------------------------------------
class SchedulerService:
    """
    Кооперативный диспетчер: по одной asyncio-задаче-таймеру на каждую
    включённую задачу. Ничего не знает о бизнес-логике, только вызывает
    колбэки run_once().

    clock/sleep подменяются в тестах, чтобы срабатывания были детерминированы.
    """

    def __init__(
        self,
        definitions: Optional[List[JobDefinition]] = None,
        callbacks: Optional[Mapping[str, JobCallback]] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.s = settings or get_settings()
        self._definitions = definitions
        self._callbacks = callbacks
        self._clock = clock
        self._sleep = sleep
        self._tz = _resolve_tz(self.s.SCHEDULER_TIMEZONE)
        self._jobs: Dict[str, JobRuntime] = {}
        self._inflight: Set["asyncio.Task[bool]"] = set()
        self._initialized = False
        self._stopping = False

    # ----------------------------- Жизненный цикл ----------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    def init(self) -> None:
        """Зарегистрировать задачи (все выключены). Повторный вызов ничего не меняет."""
        if self._initialized:
            return

        definitions = self._definitions if self._definitions is not None else default_job_definitions(self.s)
        callbacks = self._callbacks if self._callbacks is not None else default_job_callbacks()

        jobs: Dict[str, JobRuntime] = {}
        for definition in definitions:
            if definition.key in jobs:
                raise ValueError(f"job '{definition.key}' already registered")
            jobs[definition.key] = JobRuntime(
                definition=definition,
                callback=callbacks.get(definition.key) or _missing_callback(definition.key),
            )

        self._jobs = jobs
        self._initialized = True
        logger.info("Scheduler initialised, jobs: %s", list(self._jobs.keys()))

    async def shutdown(self) -> None:
        """
        Остановить все таймеры, дождаться выполняющихся вызовов (не дольше
        SCHEDULER_SHUTDOWN_GRACE_SEC) и очистить состояние. После этого
        сервис можно снова init().
        """
        self._stopping = True
        timers = []
        for job in self._jobs.values():
            if job.timer is not None:
                job.timer.cancel()
                timers.append(job.timer)
            job.timer = None
            job.enabled = False
            job.next_run = None
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        pending = set(self._inflight)
        if pending:
            logger.info("Scheduler shutdown: waiting for %d running job(s)", len(pending))
            _, still_running = await asyncio.wait(pending, timeout=self.s.SCHEDULER_SHUTDOWN_GRACE_SEC)
            for task in still_running:
                logger.warning("Scheduler shutdown: cancelling %s after grace period", task.get_name())
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)

        self._inflight.clear()
        self._jobs = {}
        self._initialized = False
        self._stopping = False
        logger.info("Scheduler stopped")

    # ------------------------------- Наблюдаемость ---------------------------

    def status(self) -> Dict[str, Dict[str, Any]]:
        """{job_key: снимок} по всем зарегистрированным задачам."""
        return {key: job.view() for key, job in self._jobs.items()}

    def job_status(self, job_key: str) -> Dict[str, Any]:
        return self._get_job(job_key).view()

    # ------------------------------- Управление ------------------------------

    def toggle(self, job_key: str, enabled: bool) -> Dict[str, Any]:
        """
        Включить/выключить задачу. Повторное включение/выключение ничего не
        меняет. Должен вызываться в потоке работающего event loop.
        Во время shutdown() включение игнорируется.
        """
        job = self._get_job(job_key)
        enabled = bool(enabled)

        if enabled and self._stopping:
            logger.warning("Scheduler is stopping, job %s stays disabled", job_key)
            return job.view()

        if enabled and not job.enabled:
            job.enabled = True
            job.next_run = self.next_fire_time(job.definition, self._clock())
            job.timer = asyncio.get_running_loop().create_task(
                self._timer_loop(job), name=f"scheduler:timer:{job_key}"
            )
            logger.info("Job %s enabled, next run at %s", job_key, iso_or_none(job.next_run))
        elif not enabled and job.enabled:
            timer = job.timer
            job.enabled = False
            job.timer = None
            job.next_run = None
            if timer is not None:
                timer.cancel()
            logger.info("Job %s disabled", job_key)

        return job.view()

    async def invoke(self, job_key: str) -> bool:
        """
        Выполнить колбэк задачи под защитой от наложения.
        Возвращает False, если предыдущий вызов ещё выполняется.
        """
        job = self._get_job(job_key)
        if job.running:
            job.skipped += 1
            logger.warning("Job %s is still running, firing skipped", job_key)
            return False

        job.running = True
        started_at = self._clock()
        t0 = time.perf_counter()
        token = set_job_context(job_key)
        try:
            await job.callback()
        except Exception as exc:
            job.failures += 1
            job.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception(
                "Job %s failed (started at %s): %s", job_key, iso_or_none(started_at), exc
            )
        else:
            job.last_error = None
            logger.info("Job %s done in %.3fs", job_key, time.perf_counter() - t0)
        finally:
            job.running = False
            job.runs += 1
            job.last_run = started_at
            job.last_duration_sec = time.perf_counter() - t0
            reset_job_context(token)
        return True

    async def run_now(self, job_key: str) -> bool:
        """
        Ручной запуск из админки/тестов. Работает и для выключенной задачи,
        защита от наложения та же, что у таймера.
        """
        self._get_job(job_key)
        logger.info("Job %s: manual run requested", job_key)
        return await self.invoke(job_key)

    # ------------------------------- Расписание ------------------------------

    def next_fire_time(self, definition: JobDefinition, after: datetime) -> datetime:
        """Ближайшее срабатывание строго после after (в UTC)."""
        base = ensure_utc(after).astimezone(self._tz)
        nxt = croniter(definition.schedule, base).get_next(datetime)
        return ensure_utc(nxt)

    # ------------------------------- Внутреннее -------------------------------

    def _get_job(self, job_key: str) -> JobRuntime:
        job = self._jobs.get(job_key)
        if job is None:
            raise UnknownJobError(job_key)
        return job

    def _spawn_invocation(self, job: JobRuntime, timer: Optional["asyncio.Task[None]"]) -> None:
        task = asyncio.get_running_loop().create_task(
            self._fire(job, timer), name=f"scheduler:job:{job.key}"
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def _is_current(self, job: JobRuntime, timer: Optional["asyncio.Task[None]"]) -> bool:
        return self._jobs.get(job.key) is job and job.enabled and job.timer is timer

    async def _fire(self, job: JobRuntime, timer: Optional["asyncio.Task[None]"]) -> bool:
        # между созданием задачи и её стартом задачу могли выключить
        if not self._is_current(job, timer):
            logger.info("Job %s was disabled before its firing started, skip", job.key)
            return False
        return await self.invoke(job.key)

    async def _timer_loop(self, job: JobRuntime) -> None:
        me = asyncio.current_task()
        while True:
            due = job.next_run
            if due is None:
                return
            try:
                delay = max(0.0, (due - self._clock()).total_seconds())
                await self._sleep(delay)

                # выключение/перевключение/shutdown за время сна
                if not self._is_current(job, me):
                    return

                job.next_run = self.next_fire_time(job.definition, max(self._clock(), due))
                self._spawn_invocation(job, me)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Job %s timer error, rescheduling: %s", job.key, exc)
                job.last_error = f"timer: {type(exc).__name__}: {exc}"
                if not self._is_current(job, me):
                    return
                job.next_run = self.next_fire_time(job.definition, self._clock())


def _resolve_tz(name: str) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


# -----------------------------------------------------------------------------
# Хелперы запуска/остановки (для lifespan приложения)
# -----------------------------------------------------------------------------
def startup_scheduler(scheduler: SchedulerService, settings: Optional[Settings] = None) -> None:
    """
    init() и включение задач из SCHEDULER_ENABLED_JOBS.
    Неизвестные ключи логируются и пропускаются.
    """
    s = settings or get_settings()
    scheduler.init()
    for job_key in s.enabled_jobs_on_start:
        try:
            scheduler.toggle(job_key, True)
        except UnknownJobError:
            logger.warning("SCHEDULER_ENABLED_JOBS: unknown job %r ignored", job_key)
    logger.info("Scheduler started")


async def shutdown_scheduler(scheduler: SchedulerService) -> None:
    await scheduler.shutdown()


__all__ = [
    "JOB_DRAW",
    "JOB_NOTIFICATIONS",
    "JOB_CLEANUP",
    "JobCallback",
    "JobDefinition",
    "JobRuntime",
    "SchedulerService",
    "default_job_definitions",
    "default_job_callbacks",
    "startup_scheduler",
    "shutdown_scheduler",
]

# =============================================================================
# Пояснения «для чайника»:
#   • Планировщик сам ничего не считает: по срабатыванию он зовёт run_once()
#     из scheduler/draw_cycles.py, send_notifications.py или cleanup_data.py.
#   • Таймер задачи спит до next_run, затем пересчитывает next_run и
#     запускает вызов отдельной задачей. Если вызов ещё идёт, новое
#     срабатывание пропускается и увеличивает счётчик skipped.
#   • Выключение отменяет таймер сразу; уже идущий вызов дорабатывает.
#   • Повторный розыгрыш одного цикла исключён не планировщиком, а условной
#     записью в CyclesCRUD.complete_draw().
# =============================================================================
