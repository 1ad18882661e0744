"""Response envelope helpers for consistent API responses."""

from typing import Any, Optional


def success_response(data: Any) -> dict[str, Any]:
    """Create a success response envelope."""
    return {"data": data, "error": None}


def error_response(code: str, message: str) -> dict[str, Any]:
    """Create an error response envelope."""
    return {"data": None, "error": {"code": code, "message": message}}


def rate_limit_headers(limit: int, remaining: int, reset_after: int, retry_after: Optional[int] = None) -> dict[str, str]:
    """Standard `RateLimit-*` headers (plus `Retry-After` on denial)."""
    headers = {
        "RateLimit-Limit": str(limit),
        "RateLimit-Remaining": str(remaining),
        "RateLimit-Reset": str(reset_after),
    }
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return headers
