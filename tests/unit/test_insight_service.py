"""Unit tests for InsightService job submission and status."""

import asyncio

import pytest

from insight_atlas.models import JobStatus, ProgressSnapshot
from insight_atlas.services import (
    BookNotFoundError,
    InsightService,
    JobNotFoundError,
    StageOrchestrator,
)


@pytest.fixture
def service(job_store, progress_cache, orchestrator) -> InsightService:
    return InsightService(job_store, progress_cache, orchestrator)


class TestSubmit:
    """Tests for InsightService.submit."""

    @pytest.mark.asyncio
    async def test_returns_job_id_and_title(self, service):
        job_id, title = await service.submit(book_id=1)

        assert job_id == 1
        assert title == "Insight Atlas Guide: Deep Work"
        await service.wait_for(job_id, timeout=5)

    @pytest.mark.asyncio
    async def test_initial_snapshot_written_before_run(self, service, progress_cache):
        job_id, _ = await service.submit(book_id=1)

        # Task has not been scheduled yet
        snapshot = await progress_cache.get_progress(job_id)
        assert snapshot.status == "queued"
        assert snapshot.percent == 0

        await service.wait_for(job_id, timeout=5)

    @pytest.mark.asyncio
    async def test_runs_to_completion_in_background(self, service):
        job_id, _ = await service.submit(book_id=1)

        job = await service.wait_for(job_id, timeout=5)

        assert job.status == JobStatus.completed
        assert service.active_jobs == []

    @pytest.mark.asyncio
    async def test_missing_book(self, service, job_store):
        with pytest.raises(BookNotFoundError) as exc_info:
            await service.submit(book_id=999)

        assert str(exc_info.value) == "Book with ID '999' not found"
        assert await job_store.get_job(1) is None

    @pytest.mark.asyncio
    async def test_concurrent_jobs_are_independent(self, service):
        first, _ = await service.submit(book_id=1)
        second, _ = await service.submit(book_id=1)

        results = await asyncio.gather(
            service.wait_for(first, timeout=5),
            service.wait_for(second, timeout=5),
        )

        assert {r.id for r in results} == {first, second}
        assert all(r.status == JobStatus.completed for r in results)


class TestStatus:
    """Tests for status and job lookups."""

    @pytest.mark.asyncio
    async def test_status_from_snapshot(self, service):
        job_id, _ = await service.submit(book_id=1)
        await service.wait_for(job_id, timeout=5)

        status = await service.get_status(job_id)

        assert status.status == "completed"
        assert status.percent == 100

    @pytest.mark.asyncio
    async def test_status_falls_back_to_job_record(self, service, job_store, progress_cache):
        job_id, _ = await service.submit(book_id=1)
        await service.wait_for(job_id, timeout=5)
        await progress_cache.clear_progress(job_id)

        status = await service.get_status(job_id)

        assert isinstance(status, ProgressSnapshot)
        assert status.status == "completed"
        assert status.percent == 100

    @pytest.mark.asyncio
    async def test_unknown_job(self, service):
        with pytest.raises(JobNotFoundError):
            await service.get_status(404)
        with pytest.raises(JobNotFoundError):
            await service.get_job(404)


class TestShutdown:
    @pytest.mark.asyncio
    async def test_cancels_running_jobs(self, job_store, progress_cache, hub):
        class BlockingGateway:
            async def invoke(self, system_prompt, user_prompt, max_tokens=16000, temperature=0.7):
                await asyncio.Event().wait()

        orchestrator = StageOrchestrator(BlockingGateway(), job_store, progress_cache, hub)
        service = InsightService(job_store, progress_cache, orchestrator)
        job_id, _ = await service.submit(book_id=1)
        await asyncio.sleep(0.05)
        assert service.active_jobs == [job_id]

        await service.shutdown()

        assert service.active_jobs == []
        job = await job_store.get_job(job_id)
        assert job.status == JobStatus.failed
