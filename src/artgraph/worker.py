"""Pipeline worker: consumes one queue and runs the matching stage.

Each job runs in its own transaction. On success the stage's follow-up
messages are enqueued and the job is acked in that same transaction, so a
crash either loses nothing or redelivers the whole job.

Outcome → disposition:

- success (including a not-found no-op): ack
- `PermanentError` (invalid merge, type mismatch, malformed payload): drop,
  logged at ERROR
- anything else (`RetryableError`, database errors, unexpected
  exceptions): retry after a backoff, failing the job after
  `queue_max_attempts`
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from artgraph.clients.embeddings import Embedder
from artgraph.config import settings
from artgraph.errors import PermanentError
from artgraph.golden.materializer import GoldenMaterializer
from artgraph.messages import (
    IndexRequest,
    MaterializeRequest,
    MergeRequest,
    PipelineMessage,
    SimilarityRequest,
    parse_message,
)
from artgraph.models.enums import JobStatus, QueueName
from artgraph.queue import ClaimedJob, JobQueue
from artgraph.resolution.canonical import MergeResolver
from artgraph.resolution.extracted import ExtractedSimilarityService
from artgraph.resolution.indexer import IdentityIndexer

logger = logging.getLogger(__name__)


async def dispatch(
    session: AsyncSession, message: PipelineMessage, embedder: Embedder
) -> list[BaseModel]:
    """Run the stage for one message and return the messages it emits."""
    if isinstance(message, IndexRequest):
        indexer = IdentityIndexer(session, embedder)
        return list(await indexer.index_source(message.entity_type, message.source_id))

    if isinstance(message, MergeRequest):
        result = await MergeResolver(session).merge(
            message.entity_type,
            message.winner_id,
            message.loser_id,
            decided_by=message.decided_by,
            notes=message.notes,
        )
        return list(result.requests)

    if isinstance(message, MaterializeRequest):
        await GoldenMaterializer(session).materialize(message.entity_type, message.entity_id)
        return []

    if isinstance(message, SimilarityRequest):
        service = ExtractedSimilarityService(session, embedder)
        await service.compute(message.entity_type, message.entity_id, message.threshold)
        return []

    raise TypeError(f"No stage handles {type(message).__name__}")


class PipelineWorker:
    """Polls one queue and processes jobs until stopped."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedder: Embedder,
        queue_name: QueueName,
        *,
        worker_name: str | None = None,
        handler: Callable[..., Any] = dispatch,
    ) -> None:
        self._session_factory = session_factory
        self._embedder = embedder
        self.queue_name = queue_name
        self.worker_name = worker_name or f"{queue_name.value}-worker"
        self._handler = handler
        self.running = False
        self.jobs_processed = 0
        self.jobs_failed = 0

    async def start(self) -> None:
        """Run the poll loop until a shutdown signal or `stop()`."""
        self._setup_signal_handlers()
        self.running = True
        logger.info("[%s] Started, listening on %s", self.worker_name, self.queue_name.value)

        while self.running:
            try:
                handled = await self.run_once()
            except asyncio.CancelledError:
                logger.info("[%s] Received cancellation", self.worker_name)
                break
            except Exception:
                logger.exception("[%s] Worker loop error", self.worker_name)
                handled = 0
            if not handled:
                await asyncio.sleep(settings.queue_poll_interval_seconds)

        logger.info(
            "[%s] Shutting down. Processed: %d, Failed: %d",
            self.worker_name, self.jobs_processed, self.jobs_failed
        )

    def stop(self) -> None:
        self.running = False

    async def run_once(self) -> int:
        """Claim one batch and process it. Returns the number of jobs claimed."""
        async with self._session_factory() as session, session.begin():
            jobs = await JobQueue(session).claim(self.queue_name)

        for job in jobs:
            await self.process(job)
        return len(jobs)

    async def process(self, job: ClaimedJob) -> JobStatus:
        """Run one job to its disposition."""
        try:
            async with self._session_factory() as session, session.begin():
                message = parse_message(job.payload)
                emitted = await self._handler(session, message, self._embedder)
                queue = JobQueue(session)
                for follow_up in emitted:
                    await queue.enqueue(follow_up)
                await queue.ack(job.id)
        except PermanentError as e:
            self.jobs_failed += 1
            logger.error("[%s] Dropping job %s: %s", self.worker_name, job.id, e)
            await self._settle(job, JobStatus.FAILED, str(e))
            return JobStatus.FAILED
        except Exception as e:
            self.jobs_failed += 1
            logger.warning(
                "[%s] Job %s failed (attempt %d), will retry: %s",
                self.worker_name, job.id, job.attempts, e, exc_info=True
            )
            return await self._settle(job, JobStatus.PENDING, f"{type(e).__name__}: {e}")

        self.jobs_processed += 1
        return JobStatus.DONE

    async def _settle(self, job: ClaimedJob, status: JobStatus, error: str) -> JobStatus:
        async with self._session_factory() as session, session.begin():
            queue = JobQueue(session)
            if status == JobStatus.FAILED:
                await queue.fail(job.id, error)
                return status
            new_status = await queue.retry(job.id, job.attempts, error)
        if new_status == JobStatus.FAILED:
            logger.error(
                "[%s] Job %s exhausted %d attempts: %s",
                self.worker_name, job.id, job.attempts, error
            )
        return new_status

    def _setup_signal_handlers(self) -> None:
        """Graceful shutdown on SIGTERM/SIGINT: finish the current job, then stop."""

        def shutdown_handler(signum: int, frame: object) -> None:
            logger.info("[%s] Received signal %s, shutting down...", self.worker_name, signum)
            self.running = False

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)
