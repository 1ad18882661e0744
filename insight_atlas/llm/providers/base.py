"""Abstract base class for text-generation providers."""

from abc import ABC, abstractmethod
from typing import Any, NoReturn

from ..errors import (
    AuthenticationError,
    ContentFilterError,
    InvalidRequestError,
    LLMError,
    ModelNotFoundError,
    RateLimitError,
    ServiceUnavailableError,
)
from ..models import LLMRequest, LLMResponse


class LLMProvider(ABC):
    """Base interface for LLM providers.

    Anthropic and OpenAI implement this so the gateway can treat them as
    interchangeable.
    """

    # Lowercase substrings of a 400 message that indicate a safety block
    CONTENT_FILTER_MARKERS: tuple[str, ...] = ("safety",)

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier: 'anthropic', 'openai'."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """True when credentials are present for this provider."""
        ...

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request and return the response.

        Raises:
            AuthenticationError: Invalid or missing API key.
            RateLimitError: Rate limit exceeded.
            TimeoutError: Request timed out.
            InvalidRequestError: Malformed request.
            ContentFilterError: Response blocked by safety filters.
            ServiceUnavailableError: Provider-side failure.
        """
        ...

    def _raise_for_status(self, error: Any, label: str) -> NoReturn:
        """Translate an SDK status error into the LLMError hierarchy.

        Args:
            error: SDK exception exposing `status_code`, `message` and
                optionally `response` / `request_id`.
            label: Human-readable vendor name for messages.
        """
        status_code = error.status_code
        message = str(error.message) if hasattr(error, "message") else str(error)
        request_id = getattr(error, "request_id", None)
        context = {"provider": self.name, "request_id": request_id}

        if status_code in (401, 403):
            raise AuthenticationError(f"{label} rejected credentials: {message}", **context) from error

        if status_code == 404:
            raise ModelNotFoundError(f"Model not found: {message}", **context) from error

        if status_code == 429:
            raise RateLimitError(
                f"{label} rate limit exceeded: {message}",
                retry_after=_retry_after_seconds(error),
                **context,
            ) from error

        if status_code == 400:
            lowered = message.lower()
            if any(marker in lowered for marker in self.CONTENT_FILTER_MARKERS):
                raise ContentFilterError(
                    f"Content blocked by {label} safety filters: {message}", **context
                ) from error
            raise InvalidRequestError(f"Invalid request to {label}: {message}", **context) from error

        if status_code >= 500:
            raise ServiceUnavailableError(
                f"{label} server error ({status_code}): {message}", **context
            ) from error

        raise LLMError(f"{label} error ({status_code}): {message}", **context) from error


def _retry_after_seconds(error: Any) -> float | None:
    """Read a numeric retry-after header off an SDK error, if any."""
    response = getattr(error, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
