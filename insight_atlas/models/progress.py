"""Progress snapshot and live event models.

Field names are camelCase because these models are the wire format for
status polling and the WebSocket channel.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from .sections import Section


class ProgressSnapshot(BaseModel):
    """Cached, pollable subset of job state."""

    status: str
    percent: int
    currentStep: str
    sectionCount: Optional[int] = None
    wordCount: Optional[int] = None
    error: Optional[str] = None


class EventType(str, Enum):
    stage = "stage"
    progress = "progress"
    section = "section"
    complete = "complete"
    error = "error"


class ProgressEvent(BaseModel):
    """One event published to live subscribers of a job."""

    type: EventType
    jobId: int
    percent: int
    message: str
    stage: Optional[str] = None
    section: Optional[Section] = None
    error: Optional[str] = None
    errorCode: Optional[str] = None
    sectionCount: Optional[int] = None
    wordCount: Optional[int] = None
    data: Optional[dict[str, Any]] = None

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict without unset optional fields."""
        return self.model_dump(mode="json", exclude_none=True)
