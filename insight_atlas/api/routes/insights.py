"""Insight generation endpoints.

Provides async job-based API for insight generation:
- POST /insights/generate: Start generation (returns jobId)
- GET /insights/{job_id}/status: Poll progress snapshot
- GET /insights/{job_id}: Full insight record

Live progress is available over the /ws WebSocket.
All responses use the { data, error } envelope pattern.
"""

from fastapi import APIRouter, Depends

from insight_atlas.api.dependencies import AppServices, get_services
from insight_atlas.api.rate_limit import RateLimitContext, require_admission
from insight_atlas.api.response import success_response
from insight_atlas.models import GenerateInsightData, GenerateInsightRequest
from insight_atlas.services import OperationClass

router = APIRouter(prefix="/insights", tags=["Insights"])


@router.post("/generate")
async def generate_insight(
    request: GenerateInsightRequest,
    services: AppServices = Depends(get_services),
    rate_limit: RateLimitContext = Depends(require_admission(OperationClass.generation)),
) -> dict:
    """Start async insight generation.

    Creates a background job and returns immediately with its id.
    Poll /insights/{jobId}/status or subscribe over /ws for progress.

    Raises:
        BookNotFoundError: Rendered as 404 BOOK_NOT_FOUND.
    """
    job_id, initial_title = await services.insights.submit(request.bookId)
    return success_response(GenerateInsightData(jobId=job_id, initialTitle=initial_title).model_dump())


@router.get("/{job_id}/status")
async def get_insight_status(
    job_id: int,
    services: AppServices = Depends(get_services),
    rate_limit: RateLimitContext = Depends(require_admission(OperationClass.general)),
) -> dict:
    """Get the job's progress snapshot."""
    snapshot = await services.insights.get_status(job_id)
    return success_response(snapshot.model_dump())


@router.get("/{job_id}")
async def get_insight(
    job_id: int,
    services: AppServices = Depends(get_services),
    rate_limit: RateLimitContext = Depends(require_admission(OperationClass.general)),
) -> dict:
    """Get the full insight record, sections included."""
    job = await services.insights.get_job(job_id)
    return success_response(job.model_dump(mode="json"))
