"""
Checkpoint model - last processed block per (job, network).
"""

from sqlalchemy import String, Integer, BigInteger, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class Checkpoint(BaseModel, TimestampMixin):
    """Progress marker of a recurring job on one network."""

    __tablename__ = "checkpoints"
    __table_args__ = (
        UniqueConstraint("job_name", "network", name="uq_checkpoint_job_network"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    job_name: Mapped[str] = mapped_column(
        String(100),
        comment="Job name, e.g. 'sync tokens'"
    )

    network: Mapped[str] = mapped_column(
        String(50),
        comment="Network name the job runs against"
    )

    block_number: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        comment="Highest block fully processed"
    )
