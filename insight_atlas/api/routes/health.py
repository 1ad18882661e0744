"""Health check endpoint."""

from fastapi import APIRouter, Depends

from insight_atlas.api.dependencies import AppServices, get_services
from insight_atlas.api.response import success_response

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check(services: AppServices = Depends(get_services)) -> dict:
    """Return system health status. Not rate limited."""
    return success_response({
        "status": "ok",
        "cache": services.cache.backend,
        "providers": {
            name: services.gateway.is_provider_available(name)
            for name in services.gateway.provider_order
        },
        "activeJobs": len(services.insights.active_jobs),
        "broadcast": services.hub.stats(),
    })
