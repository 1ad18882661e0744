"""Insight job model.

Tracks one end-to-end generation run for a single book. The orchestrator
running the job is its only writer; stores and pollers work on copies.

Pydantic v2. Extra fields are forbidden to prevent drift.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict

from .progress import ProgressSnapshot
from .sections import Section


def _utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Coarse status exposed to clients."""
    queued = "queued"
    generating = "generating"
    completed = "completed"
    failed = "failed"


class Stage(str, Enum):
    """Pipeline stage, in execution order."""
    queued = "queued"
    analysis = "analysis"
    content = "content"
    gap_analysis = "gap_analysis"
    audio = "audio"
    completed = "completed"
    failed = "failed"


# (start, end) percent owned by each working stage
STAGE_PERCENT_RANGES: dict[Stage, tuple[int, int]] = {
    Stage.analysis: (0, 20),
    Stage.content: (20, 70),
    Stage.gap_analysis: (70, 85),
    Stage.audio: (85, 100),
}


class ErrorCode(str, Enum):
    """Distinguishes failed generation from a failed save."""
    generation_error = "GENERATION_ERROR"
    persistence_error = "PERSISTENCE_ERROR"


class InsightJob(BaseModel):
    """State of one insight generation job."""
    model_config = ConfigDict(extra="forbid")

    # Identity
    id: int = Field(ge=1, description="Job (insight) identifier")
    book_id: int = Field(description="Book this insight is generated for")

    # Status
    status: JobStatus = Field(default=JobStatus.queued)
    stage: Stage = Field(default=Stage.queued)
    percent: int = Field(default=0, ge=0, le=100)
    current_step: str = Field(default="Queued", description="Human-readable step label")
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    # Content
    title: str = ""
    summary: str = ""
    key_themes: List[str] = Field(default_factory=list)
    sections: List[Section] = Field(default_factory=list)
    section_count: int = Field(default=0, ge=0)
    word_count: int = Field(default=0, ge=0)
    audio_script: str = ""
    completeness_score: int = Field(default=100, ge=0, le=100)
    gap_analysis_applied: bool = False

    # Error handling
    error_message: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    def is_terminal(self) -> bool:
        """Check if job is in a terminal state (no more updates expected)."""
        return self.status in (JobStatus.completed, JobStatus.failed)

    def advance_percent(self, value: int) -> int:
        """Raise percent to `value` (clamped to 0-100); never lowers it."""
        self.percent = max(self.percent, min(100, max(0, int(value))))
        return self.percent

    def to_snapshot(self) -> ProgressSnapshot:
        """Pollable subset of this job's state."""
        return ProgressSnapshot(
            status=self.status.value,
            percent=self.percent,
            currentStep=self.current_step,
            sectionCount=self.section_count,
            wordCount=self.word_count,
            error=self.error_message,
        )
