"""
Main entry point for the scheduler service.
Runs the sync tokens job for every configured network.

    python -m mintsync.scheduler.main
"""

import asyncio
import signal
from typing import Optional

import structlog

from mintsync.core.config import Settings, settings
from mintsync.core.database import close_database, init_database
from mintsync.core.logging import setup_logging
from mintsync.repositories import SqlRepositories
from mintsync.services import IndexingServiceClient, MetadataPinner, PinningClient
from mintsync.sync.batch_writer import BatchWriter
from mintsync.sync.checkpoint_store import CheckpointStore
from mintsync.sync.fetcher import EventFetcher
from mintsync.sync.job import SyncTokensJob
from mintsync.sync.resolver import CatalogResolver

from .task_scheduler import TaskScheduler


logger = structlog.get_logger(__name__)


def build_sync_job(
    repositories: SqlRepositories,
    indexing_client: IndexingServiceClient,
    pinner: Optional[MetadataPinner] = None,
    config: Optional[Settings] = None,
) -> SyncTokensJob:
    """Wire a sync job over one set of repositories and clients."""
    config = config or settings
    checkpoints = CheckpointStore(repositories.checkpoints)
    return SyncTokensJob(
        checkpoints=checkpoints,
        fetcher=EventFetcher(indexing_client, config),
        resolver=CatalogResolver(
            repositories.offer_pools,
            repositories.products,
            repositories.offers,
            repositories.tokens,
        ),
        writer=BatchWriter(repositories.tokens, repositories.offers, repositories.products, checkpoints),
        pinner=pinner,
        config=config,
    )


class SchedulerMain:
    """Main scheduler service coordinator."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or settings
        self.task_scheduler: Optional[TaskScheduler] = None
        self.indexing_client: Optional[IndexingServiceClient] = None
        self.pinning_client: Optional[PinningClient] = None
        self.running = False
        self.stopped = False
        self.tasks = []

    async def initialize(self):
        """Initialize scheduler components."""
        try:
            logger.info("Initializing scheduler service", networks=sorted(self.config.networks))

            session_maker = await init_database()
            repositories = SqlRepositories(session_maker)

            self.indexing_client = IndexingServiceClient()
            pinner = None
            if self.config.pinning_jwt:
                self.pinning_client = PinningClient()
                pinner = MetadataPinner(self.pinning_client)
            else:
                logger.warning("Pinning credentials not set, metadata pinning disabled")

            job = build_sync_job(repositories, self.indexing_client, pinner, self.config)

            self.task_scheduler = TaskScheduler(self.config)
            for network in self.config.networks:
                self.task_scheduler.register_sync_job(network, job)

            logger.info("Scheduler service initialized successfully", tasks=len(self.task_scheduler.tasks))

        except Exception as e:
            logger.error("Failed to initialize scheduler", error=str(e))
            raise

    async def start(self):
        """Start the scheduler service."""
        logger.info("Starting scheduler service")
        self.running = True

        self.tasks.append(asyncio.create_task(self.task_scheduler.start()))
        self.tasks.append(asyncio.create_task(self._periodic_health_check()))

        logger.info("Scheduler service started")
        await asyncio.gather(*self.tasks, return_exceptions=True)

    async def stop(self):
        """Stop the scheduler service."""
        if self.stopped:
            return
        logger.info("Stopping scheduler service")
        self.running = False
        self.stopped = True

        if self.task_scheduler:
            await self.task_scheduler.stop()

        for task in self.tasks:
            if not task.done():
                task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)

        if self.indexing_client:
            await self.indexing_client.close()
        if self.pinning_client:
            await self.pinning_client.close()
        await close_database()

        logger.info("Scheduler service stopped")

    async def _periodic_health_check(self):
        while self.running:
            try:
                await asyncio.sleep(300)  # 5 minutes
                if not self.running:
                    break

                health = await self.task_scheduler.health_check()
                logger.info("Scheduler health check", task_scheduler=health)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Health check error", error=str(e))


async def main():
    """Main function to run the scheduler service."""
    setup_logging(settings.log_file)

    scheduler = SchedulerMain()

    def signal_handler(signum, frame):
        logger.info("Received signal, shutting down", signal=signum)
        asyncio.create_task(scheduler.stop())

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await scheduler.initialize()
        await scheduler.start()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    except Exception as e:
        logger.error("Scheduler service failed", error=str(e))
        raise
    finally:
        await scheduler.stop()


if __name__ == "__main__":
    asyncio.run(main())
