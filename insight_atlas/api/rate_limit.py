"""Admission control as a FastAPI dependency.

Routes declare their operation class:

    @router.post("/generate")
    async def generate(..., rate_limit: RateLimitContext = Depends(require_admission(OperationClass.generation))):

The dependency returns a RateLimitContext instead of decorating the
request, and sets `RateLimit-*` headers on the response.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import Depends, Request, Response

from insight_atlas.services import (
    AdmissionDecision,
    OperationClass,
    RateLimitExceeded,
    principal_key_for,
)

from .dependencies import services_for
from .response import rate_limit_headers


@dataclass(frozen=True)
class RateLimitContext:
    """Admission outcome for the current request."""

    principal_key: str
    operation_class: OperationClass
    decision: AdmissionDecision


def current_user_id(request: Request) -> Optional[str]:
    """Authenticated user id for the request, or None for anonymous callers.

    An authentication layer sets `request.state.user_id`. The X-User-Id
    header is only honoured when the deployment trusts it
    (TRUST_USER_ID_HEADER, behind a gateway that sets it). Apps with their
    own authentication override this dependency.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return str(user_id)
    if services_for(request).trust_user_header:
        return request.headers.get("x-user-id") or None
    return None


def principal_key_from_request(
    request: Request,
    operation_class: OperationClass,
    user_id: Optional[str] = None,
) -> str:
    return principal_key_for(
        user_id=user_id,
        forwarded_for=request.headers.get("x-forwarded-for"),
        client_host=request.client.host if request.client else None,
        operation_class=operation_class,
    )


def require_admission(
    operation_class: OperationClass,
) -> Callable[..., Awaitable[RateLimitContext]]:
    """Build a dependency enforcing `operation_class` limits.

    Raises:
        RateLimitExceeded: From the dependency, when the request is denied.
    """

    async def dependency(
        request: Request,
        response: Response,
        user_id: Optional[str] = Depends(current_user_id),
    ) -> RateLimitContext:
        services = services_for(request)
        principal_key = principal_key_from_request(request, operation_class, user_id)
        decision = await services.admission.check(principal_key, operation_class)

        if not decision.allowed:
            rule = services.admission.rule_for(operation_class)
            raise RateLimitExceeded(
                operation_class=operation_class.value,
                limit=decision.limit,
                retry_after=decision.retry_after or decision.reset_after,
                error=rule.error,
                message=rule.message,
            )

        response.headers.update(
            rate_limit_headers(decision.limit, decision.remaining, decision.reset_after)
        )
        return RateLimitContext(
            principal_key=principal_key,
            operation_class=operation_class,
            decision=decision,
        )

    return dependency
