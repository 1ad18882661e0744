"""Service layer for insight generation."""

from .admission import (
    AdmissionController,
    AdmissionDecision,
    OperationClass,
    RateLimitRule,
    principal_key_for,
)
from .broadcast import BroadcastHub, Subscriber
from .errors import (
    BookNotFoundError,
    JobNotFoundError,
    ParseError,
    PersistenceError,
    RateLimitExceeded,
)
from .insight_service import InsightService
from .job_store import InMemoryInsightStore, InsightStore, MongoInsightStore
from .orchestrator import StageOrchestrator

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "OperationClass",
    "RateLimitRule",
    "principal_key_for",
    "BroadcastHub",
    "Subscriber",
    "BookNotFoundError",
    "JobNotFoundError",
    "ParseError",
    "PersistenceError",
    "RateLimitExceeded",
    "InsightService",
    "InMemoryInsightStore",
    "InsightStore",
    "MongoInsightStore",
    "StageOrchestrator",
]
