"""PipelineJob model: durable queue rows for the pipeline stages."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from artgraph.models.base import Base
from artgraph.models.enums import JobStatus, QueueName


class PipelineJob(Base):
    """One message on a pipeline queue.

    Delivery is at-least-once: a claimed job holds a lease (`locked_until`)
    and becomes claimable again when the lease expires without an ack.
    """

    __tablename__ = "pipeline_jobs"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    queue: Mapped[QueueName] = mapped_column()
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB)
    status: Mapped[JobStatus] = mapped_column(default=JobStatus.PENDING)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    available_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_pipeline_jobs_claim", "queue", "status", "available_at"),
    )
