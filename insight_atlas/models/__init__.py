"""Domain and API models."""

from .api_responses import (
    GenerateInsightData,
    GenerateInsightRequest,
    SubscriptionMessage,
)
from .book import Book, BookAnalysis, BookMetadata, CoreConcept
from .insight import (
    ErrorCode,
    InsightJob,
    JobStatus,
    Stage,
    STAGE_PERCENT_RANGES,
)
from .progress import EventType, ProgressEvent, ProgressSnapshot
from .sections import GapAnalysisResult, Section, SectionType
from .visuals import (
    CategoryChart,
    ChartPoint,
    ComparisonMatrix,
    FlowDiagram,
    GenericVisual,
    Hierarchy,
    HierarchyNode,
    MatrixRow,
    MindMap,
    MindMapBranch,
    RadarChart,
    RadarDimension,
    Timeline,
    TimelineEvent,
    Visual,
)

__all__ = [
    "GenerateInsightData",
    "GenerateInsightRequest",
    "SubscriptionMessage",
    "Book",
    "BookAnalysis",
    "BookMetadata",
    "CoreConcept",
    "ErrorCode",
    "InsightJob",
    "JobStatus",
    "Stage",
    "STAGE_PERCENT_RANGES",
    "EventType",
    "ProgressEvent",
    "ProgressSnapshot",
    "GapAnalysisResult",
    "Section",
    "SectionType",
    "CategoryChart",
    "ChartPoint",
    "ComparisonMatrix",
    "FlowDiagram",
    "GenericVisual",
    "Hierarchy",
    "HierarchyNode",
    "MatrixRow",
    "MindMap",
    "MindMapBranch",
    "RadarChart",
    "RadarDimension",
    "Timeline",
    "TimelineEvent",
    "Visual",
]
