"""Unit tests for the stage orchestrator.

Tests cover:
- Full pipeline run (stages, percent ranges, section ordering)
- Gap analysis merge and the unusable-output default
- Provider exhaustion, persistence failure and cancellation paths
"""

import asyncio

import pytest

from insight_atlas.models import ErrorCode, JobStatus, Stage, STAGE_PERCENT_RANGES
from insight_atlas.services import InMemoryInsightStore, PersistenceError, StageOrchestrator


async def _run_with_events(orchestrator, hub, job_store, book, drain_events):
    job = await job_store.create_job(book.id)
    subscriber = hub.connect()
    hub.subscribe(subscriber, job.id)
    result = await orchestrator.run(job, book)
    return result, await drain_events(subscriber)


class TestPipelineRun:
    """End-to-end run with all stages succeeding."""

    @pytest.mark.asyncio
    async def test_completes_all_stages(self, orchestrator, hub, job_store, sample_book, gateway, drain_events):
        result, events = await _run_with_events(orchestrator, hub, job_store, sample_book, drain_events)

        assert result.status == JobStatus.completed
        assert result.stage == Stage.completed
        assert result.percent == 100
        assert result.error_code is None
        assert [c["stage"] for c in gateway.calls] == ["analysis", "content", "gap_analysis", "audio"]

        stage_events = [e["stage"] for e in events if e["type"] == "stage"]
        assert stage_events == ["analysis", "content", "gap_analysis", "audio"]

    @pytest.mark.asyncio
    async def test_percent_is_monotonic_and_within_stage_ranges(
        self, orchestrator, hub, job_store, sample_book, drain_events
    ):
        _, events = await _run_with_events(orchestrator, hub, job_store, sample_book, drain_events)

        percents = [e["percent"] for e in events]
        assert percents == sorted(percents)
        assert percents[0] == 0

        for event in events:
            if event["type"] in ("stage", "progress", "section"):
                start, end = STAGE_PERCENT_RANGES[Stage(event["stage"])]
                assert start <= event["percent"] <= end

        final = events[-1]
        assert final["type"] == "complete"
        assert final["percent"] == 100
        assert sum(1 for e in events if e["type"] == "complete") == 1

    @pytest.mark.asyncio
    async def test_section_events_stream_during_content(
        self, orchestrator, hub, job_store, sample_book, drain_events
    ):
        _, events = await _run_with_events(orchestrator, hub, job_store, sample_book, drain_events)

        section_events = [e for e in events if e["type"] == "section"]
        assert len(section_events) == 5
        assert [e["percent"] for e in section_events] == [22, 24, 26, 28, 30]
        assert [e["sectionCount"] for e in section_events] == [1, 2, 3, 4, 5]
        assert section_events[2]["section"]["visualData"] == {"kind": "flowDiagram", "nodes": ["Plan", "Focus", "Rest"]}

    @pytest.mark.asyncio
    async def test_sections_in_canonical_order_with_gap_additions(self, orchestrator, job_store, sample_book):
        job = await job_store.create_job(sample_book.id)

        result = await orchestrator.run(job, sample_book)

        assert [s.type for s in result.sections] == [
            "quickGlance",
            "foundationalNarrative",
            "conceptExplanation",
            "practicalExample",
            "actionBox",
            "keyTakeaways",
            "structureMap",
        ]
        # Ids follow arrival order: five content sections, then two gap additions
        assert [s.id for s in result.sections] == [
            "section-1", "section-6", "section-3", "section-7", "section-4", "section-2", "section-5",
        ]
        assert all(s.content for s in result.sections)
        assert result.gap_analysis_applied is True
        assert result.completeness_score == 88

    @pytest.mark.asyncio
    async def test_streamed_section_ids_match_final_record(
        self, orchestrator, hub, job_store, sample_book, drain_events
    ):
        result, events = await _run_with_events(orchestrator, hub, job_store, sample_book, drain_events)

        final = {s.id: s.title for s in result.sections}
        streamed = {e["section"]["id"]: e["section"]["title"] for e in events if e["type"] == "section"}
        assert len(streamed) == 5
        assert all(final[section_id] == title for section_id, title in streamed.items())

    @pytest.mark.asyncio
    async def test_stored_sections_stay_canonical_during_content(self, gateway, progress_cache, hub, sample_book):
        class RecordingStore(InMemoryInsightStore):
            def __init__(self, books):
                super().__init__(books)
                self.orders = []

            async def append_section(self, job_id, section):
                await super().append_section(job_id, section)
                stored = await self.get_job(job_id)
                self.orders.append([s.type for s in stored.sections])

        store = RecordingStore([sample_book])
        orchestrator = StageOrchestrator(gateway, store, progress_cache, hub)
        job = await store.create_job(sample_book.id)

        await orchestrator.run(job, sample_book)

        assert store.orders[2] == ["quickGlance", "conceptExplanation", "keyTakeaways"]
        assert store.orders[-1] == ["quickGlance", "conceptExplanation", "actionBox", "keyTakeaways", "structureMap"]

    @pytest.mark.asyncio
    async def test_result_fields_are_persisted(self, orchestrator, job_store, sample_book):
        job = await job_store.create_job(sample_book.id)

        await orchestrator.run(job, sample_book)

        stored = await job_store.get_job(job.id)
        assert stored.status == JobStatus.completed
        assert stored.title == "Insight Atlas Guide: Deep Work"
        assert stored.summary == "Deep work is the ability to focus without distraction."
        assert stored.key_themes == ["Deep Work", "Shallow Work", "Attention Residue"]
        assert stored.audio_script == "Welcome to your Insight Atlas guide... Let's begin."
        assert stored.section_count == 7
        assert stored.word_count > 0
        assert stored.completed_at is not None

    @pytest.mark.asyncio
    async def test_final_snapshot(self, orchestrator, job_store, progress_cache, sample_book):
        job = await job_store.create_job(sample_book.id)

        result = await orchestrator.run(job, sample_book)

        snapshot = await progress_cache.get_progress(job.id)
        assert snapshot.status == "completed"
        assert snapshot.percent == 100
        assert snapshot.sectionCount == result.section_count
        assert snapshot.wordCount == result.word_count

    @pytest.mark.asyncio
    async def test_complete_event_data(self, orchestrator, hub, job_store, sample_book, drain_events):
        _, events = await _run_with_events(orchestrator, hub, job_store, sample_book, drain_events)

        assert events[-1]["data"] == {
            "title": "Insight Atlas Guide: Deep Work",
            "gapAnalysisApplied": True,
            "completenessScore": 88,
        }

    @pytest.mark.asyncio
    async def test_input_job_is_not_mutated(self, orchestrator, job_store, sample_book):
        job = await job_store.create_job(sample_book.id)

        await orchestrator.run(job, sample_book)

        assert job.status == JobStatus.queued
        assert job.percent == 0


class TestStageOutputFallbacks:
    """Unusable model output degrades instead of failing the job."""

    @pytest.mark.asyncio
    async def test_unparseable_gap_output_adds_nothing(
        self, gateway_factory, job_store, progress_cache, hub, sample_book
    ):
        gateway = gateway_factory(responses={"gap_analysis": "Everything looks great!"})
        orchestrator = StageOrchestrator(gateway, job_store, progress_cache, hub)
        job = await job_store.create_job(sample_book.id)

        result = await orchestrator.run(job, sample_book)

        assert result.status == JobStatus.completed
        assert result.gap_analysis_applied is False
        assert result.completeness_score == 100
        assert len(result.sections) == 5

    @pytest.mark.asyncio
    async def test_unparseable_analysis_continues(
        self, gateway_factory, job_store, progress_cache, hub, sample_book
    ):
        gateway = gateway_factory(responses={"analysis": "I cannot analyze this book."})
        orchestrator = StageOrchestrator(gateway, job_store, progress_cache, hub)
        job = await job_store.create_job(sample_book.id)

        result = await orchestrator.run(job, sample_book)

        assert result.status == JobStatus.completed
        assert result.key_themes == []

    @pytest.mark.asyncio
    async def test_summary_fallback_without_quick_glance(
        self, gateway_factory, job_store, progress_cache, hub, sample_book
    ):
        gateway = gateway_factory(responses={"content": "", "gap_analysis": "{}"})
        orchestrator = StageOrchestrator(gateway, job_store, progress_cache, hub)
        job = await job_store.create_job(sample_book.id)

        result = await orchestrator.run(job, sample_book)

        assert result.status == JobStatus.completed
        assert result.sections == []
        assert result.summary == 'A comprehensive analysis of "Deep Work" by Cal Newport'


class FailingUpdateStore(InMemoryInsightStore):
    """Store whose writes fail, as if the database were unreachable."""

    async def update_job(self, job_id, **updates):
        raise PersistenceError("database unavailable", operation="update_job", job_id=job_id)


class TestFailurePaths:
    """Failures end the job in `failed` with exactly one error event."""

    @pytest.mark.asyncio
    async def test_provider_exhaustion_fails_job(
        self, gateway_factory, job_store, progress_cache, hub, sample_book, drain_events
    ):
        gateway = gateway_factory(fail_stages=("content",))
        orchestrator = StageOrchestrator(gateway, job_store, progress_cache, hub)

        result, events = await _run_with_events(orchestrator, hub, job_store, sample_book, drain_events)

        assert result.status == JobStatus.failed
        assert result.stage == Stage.failed
        assert result.error_code == ErrorCode.generation_error
        assert "Content Generation" in result.error_message
        assert "anthropic, openai" in result.error_message

        errors = [e for e in events if e["type"] == "error"]
        assert len(errors) == 1
        assert errors[0]["errorCode"] == "GENERATION_ERROR"
        assert errors[0]["stage"] == "content"
        assert errors[0]["percent"] == 20
        assert events[-1] is errors[0]
        assert not any(e["type"] == "complete" for e in events)

        stored = await job_store.get_job(result.id)
        assert stored.status == JobStatus.failed
        assert stored.error_code == ErrorCode.generation_error

        snapshot = await progress_cache.get_progress(result.id)
        assert snapshot.status == "failed"
        assert snapshot.error == result.error_message

    @pytest.mark.asyncio
    async def test_provider_exhaustion_in_late_stage_fails_job(
        self, gateway_factory, job_store, progress_cache, hub, sample_book
    ):
        gateway = gateway_factory(fail_stages=("audio",))
        orchestrator = StageOrchestrator(gateway, job_store, progress_cache, hub)
        job = await job_store.create_job(sample_book.id)

        result = await orchestrator.run(job, sample_book)

        assert result.status == JobStatus.failed
        assert result.percent == 85
        assert "Audio Script" in result.error_message

    @pytest.mark.asyncio
    async def test_persistence_failure_is_distinguished(
        self, gateway, progress_cache, hub, sample_book, drain_events
    ):
        store = FailingUpdateStore([sample_book])
        orchestrator = StageOrchestrator(gateway, store, progress_cache, hub)

        result, events = await _run_with_events(orchestrator, hub, store, sample_book, drain_events)

        assert result.status == JobStatus.failed
        assert result.error_code == ErrorCode.persistence_error
        assert "database unavailable" in result.error_message
        assert gateway.calls == []

        errors = [e for e in events if e["type"] == "error"]
        assert len(errors) == 1
        assert errors[0]["errorCode"] == "PERSISTENCE_ERROR"

        snapshot = await progress_cache.get_progress(result.id)
        assert snapshot.status == "failed"

    @pytest.mark.asyncio
    async def test_cancellation_marks_job_failed(self, job_store, progress_cache, hub, sample_book):
        started = asyncio.Event()

        class BlockingGateway:
            async def invoke(self, system_prompt, user_prompt, max_tokens=16000, temperature=0.7):
                started.set()
                await asyncio.Event().wait()

        orchestrator = StageOrchestrator(BlockingGateway(), job_store, progress_cache, hub)
        job = await job_store.create_job(sample_book.id)
        task = asyncio.create_task(orchestrator.run(job, sample_book))
        await asyncio.wait_for(started.wait(), timeout=1)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await job_store.get_job(job.id)
        assert stored.status == JobStatus.failed
        assert stored.error_message == "Generation was cancelled"
