"""
Task scheduler for the periodic sync passes.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

import structlog

from mintsync.core.config import Settings, settings as default_settings
from mintsync.sync.job import SyncTokensJob

from .lease import JobLease


logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ScheduledTask:
    """Represents a scheduled task."""

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: int,
        enabled: bool = True,
        run_immediately: bool = False
    ):
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self.last_run: Optional[datetime] = None
        self.next_run = _now()
        self.run_count = 0
        self.error_count = 0
        self.last_error: Optional[str] = None

        if not run_immediately:
            self.next_run = _now() + timedelta(seconds=interval_seconds)

    def should_run(self) -> bool:
        """Check if task should run now."""
        return self.enabled and _now() >= self.next_run

    def schedule_next_run(self):
        self.next_run = _now() + timedelta(seconds=self.interval_seconds)

    async def run(self):
        """Execute the task."""
        try:
            logger.debug("Running scheduled task", task=self.name)

            start_time = _now()
            # reschedule up front so the loop does not fire again while this run is in flight
            self.schedule_next_run()
            await self.func()
            duration = (_now() - start_time).total_seconds()

            self.last_run = start_time
            self.run_count += 1

            logger.debug(
                "Task completed",
                task=self.name,
                duration=duration,
                run_count=self.run_count
            )

        except Exception as e:
            self.error_count += 1
            self.last_error = str(e)

            logger.error(
                "Task failed",
                task=self.name,
                error=str(e),
                error_count=self.error_count
            )
            raise


class TaskScheduler:
    """Runs one leased sync task per (job, network)."""

    def __init__(self, config: Optional[Settings] = None, loop_interval: float = 5):
        self.config = config or default_settings
        self.tasks: Dict[str, ScheduledTask] = {}
        self.leases: Dict[Tuple[str, str], JobLease] = {}
        self.running = False
        self.loop_interval = loop_interval
        self._in_flight: Set[asyncio.Task] = set()

    def register_task(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: int,
        enabled: bool = True,
        run_immediately: bool = False
    ) -> ScheduledTask:
        """Register a new scheduled task."""
        task = ScheduledTask(
            name=name,
            func=func,
            interval_seconds=interval_seconds,
            enabled=enabled,
            run_immediately=run_immediately
        )

        self.tasks[name] = task
        logger.info("Registered task", task=name, interval=interval_seconds)
        return task

    def register_sync_job(self, network: str, job: SyncTokensJob, run_immediately: bool = True) -> ScheduledTask:
        """Schedule ``job`` for ``network`` behind its own lease."""
        lease = self.lease_for(job.job_name, network)

        async def leased_pass():
            return await lease.run(lambda: job.run(network))

        return self.register_task(
            f"{job.job_name}:{network}",
            leased_pass,
            interval_seconds=self.config.sync_interval,
            run_immediately=run_immediately
        )

    def lease_for(self, job_name: str, network: str) -> JobLease:
        key = (job_name, network)
        if key not in self.leases:
            self.leases[key] = JobLease(job_name, network, self.config.sync_lock_lifetime)
        return self.leases[key]

    async def start(self):
        """Start the task scheduler."""
        logger.info("Starting task scheduler", tasks=len(self.tasks))
        self.running = True

        while self.running:
            try:
                self._run_pending_tasks()
                await asyncio.sleep(self.loop_interval)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Task scheduler loop error", error=str(e))
                await asyncio.sleep(self.loop_interval)

        logger.info("Task scheduler stopped")

    async def stop(self):
        """Stop the loop and cancel passes still in flight."""
        logger.info("Stopping task scheduler")
        self.running = False

        for task in self._in_flight:
            task.cancel()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    def _run_pending_tasks(self):
        """Launch every due task without waiting for it."""
        for scheduled in self.tasks.values():
            if not scheduled.should_run():
                continue
            task = asyncio.create_task(scheduled.run(), name=scheduled.name)
            self._in_flight.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task):
        self._in_flight.discard(task)
        # ScheduledTask.run already logged and counted the failure
        if not task.cancelled():
            task.exception()

    async def health_check(self) -> Dict[str, Any]:
        """Get health status of task scheduler."""
        total_tasks = len(self.tasks)
        enabled_tasks = sum(1 for task in self.tasks.values() if task.enabled)
        tasks_with_errors = sum(1 for task in self.tasks.values() if task.error_count > 0)

        task_statuses = {}
        for name, task in self.tasks.items():
            task_statuses[name] = {
                "enabled": task.enabled,
                "last_run": task.last_run.isoformat() if task.last_run else None,
                "next_run": task.next_run.isoformat(),
                "run_count": task.run_count,
                "error_count": task.error_count,
                "last_error": task.last_error
            }

        leases = {
            f"{job}:{network}": {"held": lease.held, "skipped": lease.skipped, "expired": lease.expired}
            for (job, network), lease in self.leases.items()
        }

        return {
            "healthy": self.running and tasks_with_errors < total_tasks * 0.5,
            "running": self.running,
            "total_tasks": total_tasks,
            "enabled_tasks": enabled_tasks,
            "tasks_with_errors": tasks_with_errors,
            "tasks": task_statuses,
            "leases": leases
        }
