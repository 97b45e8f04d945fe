"""
Checkpoint store - last processed block per (job, network).
"""

import structlog

from mintsync.repositories.protocols import CheckpointRepository


logger = structlog.get_logger(__name__)


class CheckpointStore:
    """Forward-only block checkpoints on top of a checkpoint repository."""

    def __init__(self, repository: CheckpointRepository):
        self.repository = repository
        self.logger = logger.bind(service="checkpoint_store")

    async def get_checkpoint(self, job_name: str, network: str) -> int:
        """Stored block number, 0 when the job never ran on ``network``."""
        block_number = await self.repository.get(job_name, network)
        return block_number if block_number is not None else 0

    async def advance_checkpoint(self, job_name: str, network: str, candidate_block: int) -> bool:
        """
        Move the checkpoint to ``candidate_block``.

        Returns False (no-op) when the stored value is already >= candidate.
        """
        if candidate_block < 0:
            raise ValueError(f"block number must be >= 0, got {candidate_block}")

        moved = await self.repository.save_if_greater(job_name, network, candidate_block)
        if moved:
            self.logger.info("Checkpoint advanced", job=job_name, network=network, block_number=candidate_block)
        else:
            self.logger.debug("Checkpoint not advanced", job=job_name, network=network, candidate=candidate_block)
        return moved
