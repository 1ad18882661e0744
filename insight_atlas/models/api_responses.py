"""API request/response models for insight generation.

Async job pattern:
1. POST /api/insights/generate -> job id
2. GET /api/insights/{job_id}/status -> progress snapshot
3. WS /ws subscribe -> live progress events
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerateInsightRequest(BaseModel):
    """Request body for starting a generation job."""
    model_config = ConfigDict(extra="forbid")

    bookId: int = Field(ge=1, description="Book to generate insights for")


class GenerateInsightData(BaseModel):
    """Payload returned when a job has been started."""

    jobId: int
    initialTitle: Optional[str] = None


class SubscriptionMessage(BaseModel):
    """Control message received on the WebSocket channel."""
    model_config = ConfigDict(extra="ignore")

    type: str
    jobId: Optional[int] = None
