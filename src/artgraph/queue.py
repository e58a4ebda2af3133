"""Durable job queue on PostgreSQL.

Delivery is at-least-once: `claim` takes jobs with `FOR UPDATE SKIP LOCKED`
and leases them for `queue_lease_seconds`. A job whose lease expires before
it is acked is claimed again, so every stage must be idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, cast
from uuid import UUID, uuid4

from pydantic import BaseModel
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from artgraph.config import settings
from artgraph.messages import queue_for
from artgraph.models.enums import JobStatus, QueueName
from artgraph.models.job import PipelineJob

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimedJob:
    """A leased job, detached from the session that claimed it."""

    id: UUID
    queue: QueueName
    payload: dict[str, Any]
    attempts: int


class JobQueue:
    """Queue operations over `pipeline_jobs`, in the session's transaction.

    Usage:
        async with async_session_factory() as session, session.begin():
            await JobQueue(session).enqueue(IndexRequest(...))
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def enqueue(self, message: BaseModel, *, delay_seconds: float = 0) -> UUID:
        """Add a message to the queue that consumes its type."""
        job = PipelineJob(
            id=uuid4(),
            queue=queue_for(message),
            payload=message.model_dump(mode="json"),
            status=JobStatus.PENDING,
            attempts=0,
        )
        if delay_seconds:
            job.available_at = func.now() + timedelta(seconds=delay_seconds)
        self._session.add(job)
        await self._session.flush()
        logger.debug("Enqueued %s job %s", job.queue.value, job.id)
        return job.id

    async def claim(self, queue: QueueName, limit: int | None = None) -> list[ClaimedJob]:
        """Lease up to `limit` available jobs (pending, or with an expired lease)."""
        now = func.now()
        stmt = (
            select(PipelineJob)
            .where(
                PipelineJob.queue == queue,
                or_(
                    and_(
                        PipelineJob.status == JobStatus.PENDING,
                        PipelineJob.available_at <= now,
                    ),
                    and_(
                        PipelineJob.status == JobStatus.PROCESSING,
                        PipelineJob.locked_until < now,
                    ),
                ),
            )
            .order_by(PipelineJob.available_at)
            .limit(limit or settings.queue_batch_size)
            .with_for_update(skip_locked=True)
        )
        result = await self._session.execute(stmt)
        jobs = list(result.scalars().all())

        claimed: list[ClaimedJob] = []
        for job in jobs:
            if job.status == JobStatus.PROCESSING:
                logger.warning("Redelivering job %s after an expired lease", job.id)
            job.status = JobStatus.PROCESSING
            job.attempts += 1
            job.locked_until = now + timedelta(seconds=settings.queue_lease_seconds)
            claimed.append(
                ClaimedJob(id=job.id, queue=job.queue, payload=dict(job.payload), attempts=job.attempts)
            )
        await self._session.flush()
        return claimed

    async def ack(self, job_id: UUID) -> None:
        await self._set_status(job_id, JobStatus.DONE, locked_until=None)

    async def retry(self, job_id: UUID, attempts: int, error: str) -> JobStatus:
        """Make a failed job available again after a backoff, or fail it for good.

        The delay grows linearly with the attempt count. Returns the job's
        new status.
        """
        if attempts >= settings.queue_max_attempts:
            await self.fail(job_id, error)
            return JobStatus.FAILED

        delay = timedelta(seconds=settings.queue_retry_delay_seconds * max(attempts, 1))
        await self._set_status(
            job_id,
            JobStatus.PENDING,
            locked_until=None,
            available_at=func.now() + delay,
            last_error=error,
        )
        return JobStatus.PENDING

    async def fail(self, job_id: UUID, error: str) -> None:
        await self._set_status(job_id, JobStatus.FAILED, locked_until=None, last_error=error)

    async def counts(self) -> dict[tuple[QueueName, JobStatus], int]:
        stmt = select(PipelineJob.queue, PipelineJob.status, func.count()).group_by(
            PipelineJob.queue, PipelineJob.status
        )
        result = await self._session.execute(stmt)
        return {(row[0], row[1]): cast(int, row[2]) for row in result.all()}

    async def _set_status(self, job_id: UUID, status: JobStatus, **values: object) -> None:
        await self._session.execute(
            update(PipelineJob)
            .where(PipelineJob.id == job_id)
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
