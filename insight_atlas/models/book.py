"""Book records and the stage-one book analysis."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Book(BaseModel):
    """A book whose text has already been extracted upstream."""

    id: int
    title: str
    author: Optional[str] = None
    extracted_text: str = ""

    @property
    def word_count(self) -> int:
        return len(self.extracted_text.split())


class BookMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    author: str = ""


class CoreConcept(BaseModel):
    model_config = ConfigDict(extra="ignore")

    conceptName: str = ""
    chapterSource: str = ""
    briefDescription: str = ""
    recommendedVisual: str = ""


class BookAnalysis(BaseModel):
    """Classification and concept inventory produced by the analysis stage.

    Every field has a default: a partially parsed analysis is still usable
    as context for the content stage.
    """
    model_config = ConfigDict(extra="allow")

    bookMetadata: BookMetadata = Field(default_factory=BookMetadata)
    classification: dict = Field(default_factory=dict)
    coreConcepts: list[CoreConcept] = Field(default_factory=list)
    crossReferences: dict = Field(default_factory=dict)
    toneAnalysis: dict = Field(default_factory=dict)

    def concept_names(self) -> list[str]:
        return [c.conceptName for c in self.coreConcepts if c.conceptName]
