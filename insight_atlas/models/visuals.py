"""Visual framework models.

Model output describes visuals with loosely shaped `visualData` (nodes as
strings or objects, branches with or without children, ...). The section
normalizer converts that into one of these variants once, so downstream
code never has to sniff shapes. Discriminated on `kind`.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class FlowDiagram(BaseModel):
    """Ordered process steps."""

    kind: Literal["flowDiagram"] = "flowDiagram"
    nodes: list[str] = Field(default_factory=list)


class MatrixRow(BaseModel):
    label: str = ""
    values: list[str] = Field(default_factory=list)


class ComparisonMatrix(BaseModel):
    """Table of rows compared across header columns."""

    kind: Literal["comparisonMatrix"] = "comparisonMatrix"
    headers: list[str] = Field(default_factory=list)
    rows: list[MatrixRow] = Field(default_factory=list)


class MindMapBranch(BaseModel):
    label: str
    subbranches: list[str] = Field(default_factory=list)


class MindMap(BaseModel):
    """Central concept with one level of branches and leaf labels."""

    kind: Literal["mindMap"] = "mindMap"
    center: str = "Central Concept"
    branches: list[MindMapBranch] = Field(default_factory=list)


class TimelineEvent(BaseModel):
    date: str = ""
    title: str = ""
    description: Optional[str] = None


class Timeline(BaseModel):
    kind: Literal["timeline"] = "timeline"
    events: list[TimelineEvent] = Field(default_factory=list)


class HierarchyNode(BaseModel):
    label: str
    children: list["HierarchyNode"] = Field(default_factory=list)


class Hierarchy(BaseModel):
    kind: Literal["hierarchy"] = "hierarchy"
    root: str = "Root"
    children: list[HierarchyNode] = Field(default_factory=list)


class RadarDimension(BaseModel):
    label: str
    value: Optional[float] = None


class RadarChart(BaseModel):
    kind: Literal["radarChart"] = "radarChart"
    dimensions: list[RadarDimension] = Field(default_factory=list)


class ChartPoint(BaseModel):
    label: str
    value: Optional[float] = None


class CategoryChart(BaseModel):
    """Labelled values drawn as bars or pie slices."""

    kind: Literal["barChart", "pieChart"] = "barChart"
    title: Optional[str] = None
    points: list[ChartPoint] = Field(default_factory=list)


class GenericVisual(BaseModel):
    """Any visual type without a dedicated shape; data kept as-is."""

    kind: Literal["generic"] = "generic"
    visualType: str = "unknown"
    data: dict[str, Any] = Field(default_factory=dict)


Visual = Annotated[
    Union[
        FlowDiagram,
        ComparisonMatrix,
        MindMap,
        Timeline,
        Hierarchy,
        RadarChart,
        CategoryChart,
        GenericVisual,
    ],
    Field(discriminator="kind"),
]

HierarchyNode.model_rebuild()
