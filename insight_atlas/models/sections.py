"""Section models for insight documents.

Pydantic v2. Sections come from model output, so unknown keys are ignored
rather than rejected.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .visuals import Visual


class SectionType(str, Enum):
    """Known section types, in canonical document order."""

    quickGlance = "quickGlance"
    foundationalNarrative = "foundationalNarrative"
    executiveSummary = "executiveSummary"
    conceptExplanation = "conceptExplanation"
    practicalExample = "practicalExample"
    insightAtlasNote = "insightAtlasNote"
    visualFramework = "visualFramework"
    actionBox = "actionBox"
    exercise = "exercise"
    selfAssessment = "selfAssessment"
    dialogueScript = "dialogueScript"
    keyTakeaways = "keyTakeaways"
    structureMap = "structureMap"


class Section(BaseModel):
    """One structured content unit of an insight document.

    `type` is kept as a plain string: model output may use types outside
    SectionType (e.g. "trackingTemplate"), which sort last on merge.
    Merge identity is `(type, title)`.
    """
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    type: str = Field(default=SectionType.conceptExplanation.value)
    title: str = ""
    content: str = ""
    visualType: Optional[str] = None
    visualData: Optional[Visual] = None
    metadata: Optional[dict[str, Any]] = None

    @property
    def identity(self) -> tuple[str, str]:
        return (self.type, self.title)

    def action_steps(self) -> list[str]:
        """Action steps from metadata, if the model supplied a list."""
        steps = (self.metadata or {}).get("actionSteps")
        if isinstance(steps, list):
            return [str(step) for step in steps]
        return []


class GapAnalysisResult(BaseModel):
    """Output of the gap-analysis completion pass."""
    model_config = ConfigDict(extra="ignore")

    gapsFound: list[str] = Field(default_factory=list)
    generatedContent: list[Section] = Field(default_factory=list)
    completenessScore: int = Field(default=100, ge=0, le=100)

    @classmethod
    def safe_default(cls) -> GapAnalysisResult:
        """Result used when model output cannot be parsed: nothing to add."""
        return cls(gapsFound=[], generatedContent=[], completenessScore=100)
