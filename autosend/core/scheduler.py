"""
APScheduler integration for FastAPI.

Fires the scheduled auto-send once a day at ``auto_send.schedule_time`` in
the business timezone. The job goes through the same runner as the API, so
an in-flight manual send of a batch is never executed twice in-process.
"""

from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy, JobOutcome, JobReleased
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.cron import CronTrigger

from autosend.config import get_config, get_settings
from autosend.core.datetime_utils import is_valid_timezone
from autosend.core.errors import ConfigurationError
from autosend.core.logging import get_logger
from autosend.services.triggers import AutoSendRunner

logger = get_logger(__name__)

AUTO_SEND_SCHEDULE_ID = "daily_auto_send"

# Global scheduler instance
scheduler: AsyncScheduler | None = None
_runner: AutoSendRunner | None = None


def parse_schedule_time(value: str) -> tuple[int, int]:
    """Parse ``HH:MM`` into (hour, minute)."""
    try:
        hour_text, minute_text = value.split(":")
        hour, minute = int(hour_text), int(minute_text)
    except ValueError as e:
        raise ConfigurationError(f"Invalid schedule_time {value!r}, expected HH:MM") from e
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ConfigurationError(f"Invalid schedule_time {value!r}, expected HH:MM")
    return hour, minute


async def auto_send_job() -> None:
    """Daily auto-send of yesterday's fuel entries."""
    if _runner is None:
        logger.warning("scheduled_auto_send_without_runner")
        return

    logger.info("scheduled_auto_send_started")
    try:
        result = await _runner.trigger_scheduled()
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_auto_send_failed")
        raise  # Re-raise so APScheduler records the failure

    if result.skipped:
        logger.bind(reason=result.reason).info("scheduled_auto_send_skipped")
    elif result.execution is None:
        logger.bind(reason=result.plan.message if result.plan else None).info(
            "scheduled_auto_send_nothing_planned"
        )
    else:
        logger.bind(
            batch_id=str(result.execution.batch_id),
            sent=result.execution.sent,
            failed=result.execution.failed,
            status=result.execution.status.value,
        ).info("scheduled_auto_send_completed")


async def start_scheduler(runner: AutoSendRunner) -> AsyncScheduler | None:
    """Initialize and start the in-memory scheduler."""
    global scheduler, _runner

    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return None

    config = get_config().auto_send
    hour, minute = parse_schedule_time(config.schedule_time)
    if not is_valid_timezone(config.timezone):
        raise ConfigurationError(f"Invalid timezone {config.timezone!r}")
    _runner = runner

    scheduler = AsyncScheduler(data_store=MemoryDataStore())

    # Start the scheduler first (required before calling other methods in APScheduler 4.x)
    await scheduler.__aenter__()

    scheduler.subscribe(_on_job_released, {JobReleased})

    await scheduler.add_schedule(
        auto_send_job,
        CronTrigger(hour=hour, minute=minute, timezone=config.timezone),
        id=AUTO_SEND_SCHEDULE_ID,
        conflict_policy=ConflictPolicy.replace,
    )

    await scheduler.start_in_background()

    logger.bind(
        job=AUTO_SEND_SCHEDULE_ID,
        schedule_time=config.schedule_time,
        timezone=config.timezone,
    ).info("scheduler_started")

    return scheduler


async def _on_job_released(event: Any) -> None:
    """Log failed scheduled runs with their exception."""
    if isinstance(event, JobReleased) and event.outcome == JobOutcome.error:
        exception = getattr(event, "exception", None)
        logger.bind(
            schedule_id=event.schedule_id,
            error=str(exception) if exception else None,
        ).error("scheduled_job_errored")


async def stop_scheduler() -> None:
    """Gracefully stop the scheduler."""
    global scheduler, _runner
    if scheduler:
        await scheduler.__aexit__(None, None, None)
        logger.info("scheduler_stopped")
        scheduler = None
    _runner = None


async def get_job_schedules() -> list[dict[str, Any]]:
    """Get all registered job schedules."""
    if not scheduler:
        return []

    schedules = await scheduler.get_schedules()
    return [
        {
            "id": s.id,
            "task_id": s.task_id,
            "trigger": str(s.trigger),
            "next_fire_time": s.next_fire_time.isoformat() if s.next_fire_time else None,
            "last_fire_time": s.last_fire_time.isoformat() if s.last_fire_time else None,
        }
        for s in schedules
    ]
