"""Insight generation service: job submission, status and task tracking.

Submission creates the job record and starts a background task that runs
the StageOrchestrator. Returns immediately for async polling or live
subscription.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from insight_atlas.cache import ProgressCache
from insight_atlas.models import InsightJob, ProgressSnapshot

from .errors import BookNotFoundError, JobNotFoundError
from .job_store import InsightStore
from .orchestrator import StageOrchestrator

logger = logging.getLogger(__name__)


class InsightService:
    """Start and observe insight generation jobs.

    Usage:
        service = InsightService(store, progress, orchestrator)
        job_id, title = await service.submit(book_id=1)
        snapshot = await service.get_status(job_id)
        ...
        await service.shutdown()
    """

    def __init__(
        self,
        store: InsightStore,
        progress: ProgressCache,
        orchestrator: StageOrchestrator,
    ):
        self._store = store
        self._progress = progress
        self._orchestrator = orchestrator
        self._tasks: dict[int, asyncio.Task] = {}

    @property
    def active_jobs(self) -> list[int]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def submit(self, book_id: int) -> tuple[int, str]:
        """Start generation for a book.

        Args:
            book_id: Book to generate insights for.

        Returns:
            (job id, initial title) for the new job.

        Raises:
            BookNotFoundError: The book does not exist.
            PersistenceError: The job record could not be created.
        """
        book = await self._store.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)

        job = await self._store.create_job(book_id)
        await self._progress.set_progress(job.id, job.to_snapshot())

        logger.info(f"Starting insight generation job {job.id} for book {book_id}")

        task = asyncio.create_task(
            self._orchestrator.run(job, book),
            name=f"insight_generation_{job.id}",
        )
        self._tasks[job.id] = task
        task.add_done_callback(lambda t, job_id=job.id: self._on_task_done(job_id, t))

        return job.id, f"Insight Atlas Guide: {book.title}"

    def _on_task_done(self, job_id: int, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Job {job_id}: Generation task crashed: {error}", exc_info=error)

    async def wait_for(self, job_id: int, timeout: Optional[float] = None) -> Optional[InsightJob]:
        """Wait for a running job's task to finish and return its result."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return await self._store.get_job(job_id)

    async def get_status(self, job_id: int) -> ProgressSnapshot:
        """Current progress snapshot, falling back to the job record.

        Raises:
            JobNotFoundError: Neither a snapshot nor a job record exists.
        """
        snapshot = await self._progress.get_progress(job_id)
        if snapshot is not None:
            return snapshot

        job = await self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.to_snapshot()

    async def get_job(self, job_id: int) -> InsightJob:
        """Full job record.

        Raises:
            JobNotFoundError: The job does not exist.
        """
        job = await self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def shutdown(self) -> None:
        """Cancel running generation tasks and wait for them to settle."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running generation tasks")
        self._tasks.clear()
