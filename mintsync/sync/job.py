"""
The recurring "sync tokens" job.

One pass: read checkpoint -> fetch events -> resolve concurrently -> reduce
into sale counts -> pin pending metadata -> write groups -> advance checkpoint.
Every write is an upsert or an absolute set, so a pass interrupted after
some writes can be re-run from the same checkpoint.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import structlog

from mintsync.core.config import NetworkSettings, Settings, settings as default_settings
from mintsync.core.exceptions import PinningError
from mintsync.services.pinning import MetadataPinner

from .accumulator import ReconciliationAccumulator
from .batch_writer import BatchWriter, build_count_updates
from .checkpoint_store import CheckpointStore
from .fetcher import EventFetcher
from .resolver import CatalogResolver
from .types import (
    MintResolution,
    OfferKey,
    OfferRecord,
    ProductKey,
    ProductRecord,
    RawEvent,
    SyncPassReport,
    TokenKey,
    TokenRecord,
    TokenUpsert,
)


logger = structlog.get_logger(__name__)


@dataclass
class PassPlan:
    """Everything one pass is going to write."""
    upserts: Dict[TokenKey, TokenUpsert] = field(default_factory=dict)
    existing: Dict[TokenKey, Optional[TokenRecord]] = field(default_factory=dict)
    offer_sales: ReconciliationAccumulator = field(default_factory=ReconciliationAccumulator)
    product_sales: ReconciliationAccumulator = field(default_factory=ReconciliationAccumulator)
    offer_snapshots: Dict[OfferKey, OfferRecord] = field(default_factory=dict)
    product_snapshots: Dict[ProductKey, ProductRecord] = field(default_factory=dict)


class SyncTokensJob:
    """Reconciles TokenMinted events into the token catalog."""

    def __init__(
        self,
        checkpoints: CheckpointStore,
        fetcher: EventFetcher,
        resolver: CatalogResolver,
        writer: BatchWriter,
        pinner: Optional[MetadataPinner] = None,
        config: Optional[Settings] = None,
    ):
        self.checkpoints = checkpoints
        self.fetcher = fetcher
        self.resolver = resolver
        self.writer = writer
        self.pinner = pinner
        self.config = config or default_settings
        self.job_name = self.config.sync_job_name
        self.logger = logger.bind(service="sync_tokens")

    async def run(self, network_name: str) -> SyncPassReport:
        """
        Run one reconciliation pass for ``network_name``.

        Raises:
            IndexerError: fetch retries exhausted; checkpoint untouched
            ConfigurationError: unknown network
        """
        network = self.config.get_network(network_name)
        started_at = datetime.now(timezone.utc)
        report = SyncPassReport(
            pass_id=f"sync_{network_name}_{int(started_at.timestamp())}",
            job_name=self.job_name,
            network=network_name,
            started_at=started_at,
        )
        log = self.logger.bind(job=self.job_name, network=network_name, pass_id=report.pass_id)

        report.from_block = await self.checkpoints.get_checkpoint(self.job_name, network_name)
        events = await self.fetcher.fetch_events(network, report.from_block)
        report.events_fetched = len(events)

        if not events:
            report.checkpoint = report.from_block
            report.completed_at = datetime.now(timezone.utc)
            log.info("No new events", from_block=report.from_block)
            return report

        resolutions = await self._resolve_all(events, network)
        plan = self._reduce(resolutions, report)
        await self._pin_pending_metadata(plan, report, log)

        offer_updates = build_count_updates(plan.offer_sales.flush(), plan.offer_snapshots)
        product_updates = build_count_updates(plan.product_sales.flush(), plan.product_snapshots)

        # a pass without a single resolvable event leaves the checkpoint alone
        candidate_block = max(event.block_number for event in events) if report.events_resolved else None

        report.write_results, report.checkpoint_advanced = await self.writer.commit(
            self.job_name,
            network_name,
            list(plan.upserts.values()),
            offer_updates,
            product_updates,
            candidate_block,
        )
        report.checkpoint = await self.checkpoints.get_checkpoint(self.job_name, network_name)
        report.completed_at = datetime.now(timezone.utc)

        log.info(
            "Sync pass completed",
            from_block=report.from_block,
            checkpoint=report.checkpoint,
            events_fetched=report.events_fetched,
            events_resolved=report.events_resolved,
            events_skipped=report.events_skipped,
            sales_counted=report.sales_counted,
            pin_failures=report.pin_failures,
            failed_groups=report.failed_groups,
            duration=f"{report.duration_seconds:.1f}s",
        )
        return report

    async def _resolve_all(self, events: List[RawEvent], network: NetworkSettings) -> List[MintResolution]:
        """Fan out resolution; handlers only read and return private results."""
        semaphore = asyncio.Semaphore(max(1, self.config.sync_resolve_concurrency))

        async def handle(event: RawEvent) -> MintResolution:
            async with semaphore:
                return await self.resolver.resolve_event(event, network)

        return list(await asyncio.gather(*(handle(event) for event in events)))

    def _reduce(self, resolutions: List[MintResolution], report: SyncPassReport) -> PassPlan:
        """
        Single-threaded merge of all resolutions.

        Later blocks win the token fields; a token counts as a sale once per
        pass and only if it was not already minted before the pass.
        """
        plan = PassPlan()
        counted: Set[TokenKey] = set()

        for resolution in sorted(resolutions, key=lambda r: r.event.block_number):
            if not resolution.resolved:
                report.events_skipped += 1
                continue

            report.events_resolved += 1
            key = resolution.event.token_key
            plan.upserts[key] = resolution.upsert
            plan.existing.setdefault(key, resolution.existing_token)

            if resolution.offer is None or resolution.already_minted or key in counted:
                continue

            counted.add(key)
            offer, product = resolution.offer, resolution.product
            plan.offer_sales.record_sale(offer.key)
            plan.offer_snapshots.setdefault(offer.key, offer)
            plan.product_sales.record_sale(product.key)
            plan.product_snapshots.setdefault(product.key, product)
            report.sales_counted += 1

        return plan

    async def _pin_pending_metadata(self, plan: PassPlan, report: SyncPassReport, log) -> None:
        """Attach a metadata URI to upserts whose token has metadata but no URI yet."""
        if self.pinner is None:
            return

        pending = [
            (key, existing) for key, existing in plan.existing.items()
            if existing is not None and existing.needs_metadata_pin()
        ]
        if not pending:
            return

        async def pin(key: TokenKey, existing: TokenRecord) -> None:
            try:
                plan.upserts[key].metadata_uri = await self.pinner.pin(existing.token_metadata)
            except PinningError as e:
                # retried on a later pass: the token still has metadata and no URI
                report.pin_failures += 1
                log.warning("Metadata pin failed", token=key._asdict(), error=e.message)

        await asyncio.gather(*(pin(key, existing) for key, existing in pending))
