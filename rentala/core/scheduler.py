"""
Background task registration and APScheduler integration.

Business code registers tasks as "daily at HH:MM" or "every N hours/minutes"
on a TaskRegistry; only this module knows how those map onto APScheduler
triggers.

Default tasks:
- Notification sweep: daily at the configured time (09:00 UTC)
- Periodic notification sweep: every 6 hours
- Due report scan: every 15 minutes
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy, JobOutcome, JobReleased
from apscheduler.abc import Trigger
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from rentala.config import AppConfig, get_config, get_settings
from rentala.core.database import AsyncSessionLocal
from rentala.core.datetime_utils import to_naive_utc, utc_now
from rentala.core.logging import get_logger

logger = get_logger(__name__)

TaskFunc = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class ScheduledTask:
    """A task and when it should run: daily at hour:minute, or every interval."""

    id: str
    func: TaskFunc
    hour: int | None = None
    minute: int | None = None
    interval: timedelta | None = None

    @property
    def is_daily(self) -> bool:
        return self.interval is None


class TaskRegistry:
    """Registry of background tasks, independent of the trigger backend."""

    def __init__(self) -> None:
        self._tasks: dict[str, ScheduledTask] = {}

    def register_daily_at(self, task_id: str, func: TaskFunc, hour: int, minute: int = 0) -> None:
        """Run func once a day at hour:minute UTC."""
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"Invalid time of day for {task_id}: {hour:02d}:{minute:02d}")
        self._tasks[task_id] = ScheduledTask(id=task_id, func=func, hour=hour, minute=minute)

    def register_periodic(
        self, task_id: str, func: TaskFunc, hours: int = 0, minutes: int = 0
    ) -> None:
        """Run func repeatedly at a fixed interval."""
        interval = timedelta(hours=hours, minutes=minutes)
        if interval <= timedelta(0):
            raise ValueError(f"Interval for {task_id} must be positive")
        self._tasks[task_id] = ScheduledTask(id=task_id, func=func, interval=interval)

    def get(self, task_id: str) -> ScheduledTask | None:
        return self._tasks.get(task_id)

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())


@dataclass
class SchedulerHandle:
    """Token returned by start_scheduler; pass it back to stop_scheduler."""

    scheduler: AsyncScheduler
    registry: TaskRegistry = field(default_factory=TaskRegistry)
    running: bool = True


async def notification_sweep_job() -> None:
    """Notification sweep - overdue rent and lease expiration checks."""
    # Import here to avoid circular imports
    from rentala.jobs.notifications import main as run_notification_job

    logger.info("scheduled_notification_sweep_started")
    try:
        await run_notification_job()
        logger.info("scheduled_notification_sweep_completed")
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_notification_sweep_failed")
        raise  # Re-raise so APScheduler records the failure


async def report_scan_job() -> None:
    """Due report scan - renders and emails reports whose time has come."""
    from rentala.jobs.reports import main as run_report_job

    try:
        await run_report_job()
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_report_scan_failed")
        raise


def build_default_registry(config: AppConfig | None = None) -> TaskRegistry:
    """Register the engine's standard background tasks."""
    scheduler_config = (config or get_config()).scheduler
    registry = TaskRegistry()

    registry.register_daily_at(
        "notification_sweep_daily",
        notification_sweep_job,
        hour=scheduler_config.daily_sweep_hour,
        minute=scheduler_config.daily_sweep_minute,
    )
    # Both sweep tasks run the full sweep; notification_log suppresses repeats
    registry.register_periodic(
        "notification_sweep_periodic",
        notification_sweep_job,
        hours=scheduler_config.periodic_sweep_hours,
    )
    registry.register_periodic(
        "report_scan",
        report_scan_job,
        minutes=scheduler_config.report_scan_minutes,
    )
    return registry


def build_trigger(task: ScheduledTask) -> Trigger:
    """Map a registered task onto an APScheduler trigger."""
    if task.is_daily:
        return CronTrigger(hour=task.hour, minute=task.minute, timezone="UTC")
    return IntervalTrigger(seconds=int(task.interval.total_seconds()))


async def _record_job_result(
    job_id: str,
    scheduled_at: datetime,
    started_at: datetime,
    outcome: JobOutcome,
    error: str | None = None,
) -> None:
    """Record job execution result to database."""
    from rentala.models.job_run import JobRun

    async with AsyncSessionLocal() as db:
        job_run = JobRun(
            job_id=job_id,
            scheduled_at=scheduled_at,
            started_at=started_at,
            finished_at=utc_now(),
            outcome=outcome.name,
            error=error,
        )
        db.add(job_run)
        await db.commit()


async def _on_job_completed(event: Any) -> None:
    """Handle job completion events."""
    if isinstance(event, JobReleased):
        try:
            scheduled_at = getattr(event, "scheduled_start", None) or utc_now()
            started_at = getattr(event, "started_at", None) or utc_now()
            error = getattr(event, "exception_message", None)
            await _record_job_result(
                job_id=event.schedule_id or "unknown",
                scheduled_at=to_naive_utc(scheduled_at),
                started_at=to_naive_utc(started_at),
                outcome=event.outcome,
                error=error if event.outcome == JobOutcome.error else None,
            )
        except Exception as e:
            logger.bind(error=str(e)).error("failed_to_record_job_result")


async def start_scheduler(registry: TaskRegistry | None = None) -> SchedulerHandle | None:
    """
    Start an in-process scheduler running every task in the registry.

    Returns:
        Handle for stop_scheduler, or None when the scheduler is disabled
    """
    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return None

    registry = registry or build_default_registry()

    # In-memory storage: schedules are rebuilt from the registry on every start
    scheduler = AsyncScheduler(data_store=MemoryDataStore())

    # Start the scheduler first (required before calling other methods in APScheduler 4.x)
    await scheduler.__aenter__()

    # Subscribe to job events for history tracking
    scheduler.subscribe(_on_job_completed)

    for task in registry.list_tasks():
        await scheduler.add_schedule(
            task.func,
            build_trigger(task),
            id=task.id,
            conflict_policy=ConflictPolicy.replace,
        )

    # Start the scheduler's background worker to actually process jobs
    await scheduler.start_in_background()

    logger.bind(jobs=[task.id for task in registry.list_tasks()]).info("scheduler_started")
    return SchedulerHandle(scheduler=scheduler, registry=registry)


async def stop_scheduler(handle: SchedulerHandle | None) -> None:
    """Gracefully stop the scheduler behind a handle. Safe to call twice."""
    if handle is None or not handle.running:
        return

    await handle.scheduler.__aexit__(None, None, None)
    handle.running = False
    logger.info("scheduler_stopped")


def describe_trigger(task: ScheduledTask) -> str:
    """Human-readable form of a task's timing, e.g. "daily at 09:00 UTC" or "every 15m"."""
    if task.is_daily:
        return f"daily at {task.hour:02d}:{task.minute:02d} UTC"

    minutes = int(task.interval.total_seconds() // 60)
    if minutes % 60 == 0:
        return f"every {minutes // 60}h"
    return f"every {minutes}m"


async def get_job_schedules(
    handle: SchedulerHandle | None, registry: TaskRegistry | None = None
) -> list[dict[str, Any]]:
    """
    Describe every registered task and, if the scheduler runs, its fire times.

    Without a running handle the default registry is described with
    active=False, so operators can see what would run.
    """
    running = handle is not None and handle.running
    if registry is None:
        registry = handle.registry if running else build_default_registry()

    fire_times: dict[str, tuple[datetime | None, datetime | None]] = {}
    if running:
        for schedule in await handle.scheduler.get_schedules():
            fire_times[schedule.id] = (schedule.next_fire_time, schedule.last_fire_time)

    described = []
    for task in registry.list_tasks():
        next_fire, last_fire = fire_times.get(task.id, (None, None))
        described.append(
            {
                "id": task.id,
                "trigger": describe_trigger(task),
                "active": task.id in fire_times,
                "next_fire_time": to_naive_utc(next_fire) if next_fire else None,
                "last_fire_time": to_naive_utc(last_fire) if last_fire else None,
            }
        )
    return described
