"""Stage orchestrator for insight generation.

Drives one job through:
    queued -> analysis -> content -> gap_analysis -> audio -> completed

with `failed` reachable from any working stage. Each stage owns a percent
range (see STAGE_PERCENT_RANGES); the job's percent only ever rises.

Per stage the orchestrator calls the model gateway, parses the output,
merges sections, persists the job, writes the progress snapshot and then
publishes an event. Snapshot-before-publish lets a late subscriber that
reads the snapshot after registering miss nothing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from insight_atlas.cache import ProgressCache
from insight_atlas.llm import ModelGateway, ProviderError
from insight_atlas.models import (
    Book,
    BookAnalysis,
    ErrorCode,
    EventType,
    InsightJob,
    JobStatus,
    ProgressEvent,
    Section,
    SectionType,
    Stage,
    STAGE_PERCENT_RANGES,
)

from . import prompts
from .broadcast import BroadcastHub
from .content_parser import parse_book_analysis, parse_gap_analysis, parse_section_stream
from .errors import PersistenceError
from .job_store import InsightStore
from .section_merger import assign_section_ids, count_words, merge_sections

logger = logging.getLogger(__name__)

# Model call parameters per stage
ANALYSIS_MAX_TOKENS = 8000
ANALYSIS_TEMPERATURE = 0.5
CONTENT_MAX_TOKENS = 16000
GAP_MAX_TOKENS = 16000
AUDIO_MAX_TOKENS = 4000

SUMMARY_MAX_CHARS = 1000
KEY_THEME_LIMIT = 5

# Content-stage percent: range start + SECTION_PERCENT_STEP per section, capped at range end
SECTION_PERCENT_STEP = 2

STAGE_LABELS = {
    Stage.analysis: "Book Analysis",
    Stage.content: "Content Generation",
    Stage.gap_analysis: "Gap Analysis",
    Stage.audio: "Audio Script",
}


def _section_percent(section_number: int) -> int:
    start, end = STAGE_PERCENT_RANGES[Stage.content]
    return start + min(section_number * SECTION_PERCENT_STEP, end - start)


class StageOrchestrator:
    """Run insight jobs through the generation pipeline.

    One instance is shared by all jobs; per-job state lives in the
    InsightJob being run, which only this orchestrator writes.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        store: InsightStore,
        progress: ProgressCache,
        hub: BroadcastHub,
    ):
        self._gateway = gateway
        self._store = store
        self._progress = progress
        self._hub = hub

    async def run(self, job: InsightJob, book: Book) -> InsightJob:
        """Generate the insight for `book`.

        Never raises for generation or persistence failures: those leave
        the job in `failed` with an error code. Cancellation marks the job
        failed and propagates.

        Returns:
            The job in its terminal state.
        """
        job = job.model_copy(deep=True)
        logger.info(f"Job {job.id}: Starting insight generation for book {book.id}")

        try:
            analysis = await self._run_analysis(job, book)
            await self._run_content(job, book, analysis)
            await self._run_gap_analysis(job, book)
            await self._run_audio(job, book, analysis)
            await self._complete(job, book, analysis)
        except ProviderError as e:
            logger.error(f"Job {job.id}: Generation failed: {e}", exc_info=True)
            await self._fail(
                job,
                ErrorCode.generation_error,
                f"Generation failed during {STAGE_LABELS.get(job.stage, job.stage.value)}: "
                f"all model providers were unavailable ({', '.join(e.attempted)})",
            )
        except PersistenceError as e:
            logger.error(f"Job {job.id}: Failed to save progress: {e}", exc_info=True)
            await self._fail(job, ErrorCode.persistence_error, f"Failed to save insight: {e.message}")
        except asyncio.CancelledError:
            logger.info(f"Job {job.id}: Cancelled")
            await self._fail(job, ErrorCode.generation_error, "Generation was cancelled")
            raise
        except Exception as e:
            logger.error(f"Job {job.id}: Unexpected generation error: {e}", exc_info=True)
            await self._fail(job, ErrorCode.generation_error, f"Generation failed: {e}")

        return job

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_analysis(self, job: InsightJob, book: Book) -> BookAnalysis:
        await self._enter_stage(job, Stage.analysis, "Analyzing book structure and content...")

        result = await self._gateway.invoke(
            prompts.ANALYSIS_SYSTEM_PROMPT,
            prompts.build_analysis_user_prompt(book),
            max_tokens=ANALYSIS_MAX_TOKENS,
            temperature=ANALYSIS_TEMPERATURE,
        )
        analysis = parse_book_analysis(result.content)
        logger.info(f"Job {job.id}: Analysis via {result.provider}, {len(analysis.coreConcepts)} core concepts")

        await self._persist(job)
        await self._progress_event(
            job,
            STAGE_PERCENT_RANGES[Stage.analysis][1],
            f"Book analysis complete. Identified {len(analysis.coreConcepts)} core concepts.",
        )
        return analysis

    async def _run_content(self, job: InsightJob, book: Book, analysis: BookAnalysis) -> None:
        await self._enter_stage(job, Stage.content, "Generating premium content...")

        result = await self._gateway.invoke(
            prompts.CONTENT_SYSTEM_PROMPT,
            prompts.build_content_user_prompt(book, analysis),
            max_tokens=CONTENT_MAX_TOKENS,
        )
        parsed = parse_section_stream(result.content)
        logger.info(f"Job {job.id}: Content via {result.provider}, {len(parsed)} sections parsed")

        for number, section in enumerate(parsed, start=1):
            section = assign_section_ids(job.sections, [section])[0]
            job.sections = merge_sections(job.sections, [section])
            job.section_count = len(job.sections)
            job.word_count = count_words(job.sections)
            await self._store.append_section(job.id, section)
            job.advance_percent(_section_percent(number))
            job.current_step = f"Generated section {number}: {section.title}"
            await self._save_snapshot(job)
            self._publish(
                job,
                EventType.section,
                job.current_step,
                stage=Stage.content,
                section=section,
                sectionCount=job.section_count,
            )

        await self._persist(job, sections=job.sections)
        await self._progress_event(
            job,
            STAGE_PERCENT_RANGES[Stage.content][1],
            f"Content generation complete. Generated {len(job.sections)} sections.",
        )

    async def _run_gap_analysis(self, job: InsightJob, book: Book) -> None:
        await self._enter_stage(job, Stage.gap_analysis, "Checking all 9 dimensions for gaps...")

        result = await self._gateway.invoke(
            prompts.GAP_SYSTEM_PROMPT,
            prompts.build_gap_user_prompt(book, job.sections),
            max_tokens=GAP_MAX_TOKENS,
        )
        gap = parse_gap_analysis(result.content)
        job.completeness_score = gap.completenessScore
        await self._progress_event(
            job,
            80,
            f"Found {len(gap.gapsFound)} gaps. Completeness: {gap.completenessScore}%",
        )

        if gap.generatedContent:
            additions = assign_section_ids(job.sections, gap.generatedContent)
            job.sections = merge_sections(job.sections, additions)
            job.gap_analysis_applied = True
            message = f"Gap analysis applied. Now have {len(job.sections)} sections."
        else:
            message = "No gaps found. Content is complete."

        job.section_count = len(job.sections)
        job.word_count = count_words(job.sections)
        await self._persist(
            job,
            sections=job.sections,
            completeness_score=job.completeness_score,
            gap_analysis_applied=job.gap_analysis_applied,
        )
        await self._progress_event(
            job,
            STAGE_PERCENT_RANGES[Stage.gap_analysis][1],
            message,
            sectionCount=job.section_count,
            wordCount=job.word_count,
        )

    async def _run_audio(self, job: InsightJob, book: Book, analysis: BookAnalysis) -> None:
        await self._enter_stage(job, Stage.audio, "Generating audio narration script...")

        job.title = self._guide_title(book)
        result = await self._gateway.invoke(
            prompts.AUDIO_SYSTEM_PROMPT,
            prompts.build_audio_user_prompt(book, job.title, job.sections, analysis.concept_names()),
            max_tokens=AUDIO_MAX_TOKENS,
        )
        job.audio_script = result.content.strip()

        await self._persist(job, title=job.title, audio_script=job.audio_script)
        await self._progress_event(job, 95, "Audio script generated.")

    async def _complete(self, job: InsightJob, book: Book, analysis: BookAnalysis) -> None:
        job.word_count = count_words(job.sections)
        job.section_count = len(job.sections)
        job.key_themes = analysis.concept_names()[:KEY_THEME_LIMIT]
        job.summary = self._summary(job.sections, book)
        job.status = JobStatus.completed
        job.stage = Stage.completed
        job.advance_percent(100)
        job.current_step = f"Complete! Generated {job.section_count} sections, {job.word_count} words."

        stored = await self._persist(
            job,
            title=job.title,
            summary=job.summary,
            key_themes=job.key_themes,
            sections=job.sections,
            audio_script=job.audio_script,
        )
        job.completed_at = stored.completed_at
        await self._save_snapshot(job)
        self._publish(
            job,
            EventType.complete,
            job.current_step,
            sectionCount=job.section_count,
            wordCount=job.word_count,
            data={
                "title": job.title,
                "gapAnalysisApplied": job.gap_analysis_applied,
                "completenessScore": job.completeness_score,
            },
        )
        logger.info(f"Job {job.id}: Generation completed ({job.section_count} sections, {job.word_count} words)")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _guide_title(book: Book) -> str:
        return f"Insight Atlas Guide: {book.title}"

    @staticmethod
    def _summary(sections: list[Section], book: Book) -> str:
        quick_glance = next((s for s in sections if s.type == SectionType.quickGlance.value), None)
        if quick_glance and quick_glance.content:
            summary = quick_glance.content
        else:
            summary = f'A comprehensive analysis of "{book.title}" by {book.author or "Unknown Author"}'
        return summary[:SUMMARY_MAX_CHARS]

    async def _enter_stage(self, job: InsightJob, stage: Stage, message: str) -> None:
        job.status = JobStatus.generating
        job.stage = stage
        job.advance_percent(STAGE_PERCENT_RANGES[stage][0])
        job.current_step = message
        logger.info(f"Job {job.id}: Starting {STAGE_LABELS[stage]} stage")

        await self._persist(job)
        await self._save_snapshot(job)
        self._publish(job, EventType.stage, message, stage=stage, data={"stageName": STAGE_LABELS[stage]})

    async def _progress_event(self, job: InsightJob, percent: int, message: str, **fields: Any) -> None:
        job.advance_percent(percent)
        job.current_step = message
        await self._save_snapshot(job)
        self._publish(job, EventType.progress, message, stage=job.stage, **fields)

    async def _persist(self, job: InsightJob, **fields: Any) -> InsightJob:
        """Write status fields (plus `fields`) to the job store."""
        return await self._store.update_job(
            job.id,
            status=job.status,
            stage=job.stage,
            percent=job.percent,
            current_step=job.current_step,
            section_count=job.section_count,
            word_count=job.word_count,
            **fields,
        )

    async def _save_snapshot(self, job: InsightJob) -> None:
        await self._progress.set_progress(job.id, job.to_snapshot())

    def _publish(
        self,
        job: InsightJob,
        event_type: EventType,
        message: str,
        stage: Optional[Stage] = None,
        **fields: Any,
    ) -> None:
        event = ProgressEvent(
            type=event_type,
            jobId=job.id,
            percent=job.percent,
            message=message,
            stage=stage.value if stage else None,
            **fields,
        )
        self._hub.publish(job.id, event.to_wire())

    async def _fail(self, job: InsightJob, code: ErrorCode, message: str) -> None:
        """Move the job to `failed`, persist it, and publish one error event."""
        failed_stage = job.stage
        job.status = JobStatus.failed
        job.stage = Stage.failed
        job.error_message = message
        job.error_code = code
        job.current_step = "Failed"

        try:
            stored = await self._persist(job, error_message=message, error_code=code)
            job.completed_at = stored.completed_at
        except PersistenceError as e:
            # Snapshot and event still report the failure
            logger.error(f"Job {job.id}: Could not record failure: {e}")

        await self._save_snapshot(job)
        self._publish(
            job,
            EventType.error,
            message,
            stage=failed_stage,
            error=message,
            errorCode=code.value,
        )
