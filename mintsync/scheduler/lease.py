"""
Per-(job, network) lease: at most one pass runs at a time, and a pass that
outlives the lease lifetime is cancelled.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from mintsync.core.exceptions import SchedulerError


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class JobLease:
    """In-process lease guarding one (job, network) pair."""

    def __init__(self, job_name: str, network: str, lifetime_seconds: float):
        self.job_name = job_name
        self.network = network
        self.lifetime_seconds = lifetime_seconds
        self._lock = asyncio.Lock()
        self.skipped = 0
        self.expired = 0

    @property
    def held(self) -> bool:
        return self._lock.locked()

    async def run(self, func: Callable[[], Awaitable[T]]) -> Optional[T]:
        """
        Run ``func`` under the lease.

        Returns None without calling ``func`` when a pass is already running.

        Raises:
            SchedulerError: ``func`` did not finish within the lease lifetime
        """
        if self._lock.locked():
            self.skipped += 1
            logger.info("Lease held, skipping run", job=self.job_name, network=self.network)
            return None

        async with self._lock:
            try:
                return await asyncio.wait_for(func(), timeout=self.lifetime_seconds)
            except asyncio.TimeoutError as e:
                self.expired += 1
                raise SchedulerError(
                    f"{self.job_name} on {self.network} exceeded lease lifetime",
                    details={"lifetime_seconds": self.lifetime_seconds}
                ) from e
