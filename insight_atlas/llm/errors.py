"""LLM error hierarchy.

Provider adapters translate SDK exceptions into these types so the gateway
can decide when to fall through to the secondary provider.
"""


class LLMError(Exception):
    """Base exception for LLM operations."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        request_id: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.request_id = request_id

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " ".join(parts)


class AuthenticationError(LLMError):
    """401/403 or missing API key."""

    pass


class RateLimitError(LLMError):
    """429 from the provider."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        provider: str | None = None,
        request_id: str | None = None,
    ):
        super().__init__(message, provider, request_id)
        self.retry_after = retry_after


class TimeoutError(LLMError):
    """Request exceeded the per-attempt timeout."""

    pass


class InvalidRequestError(LLMError):
    """400 - malformed request (bad model params, too many tokens)."""

    pass


class ContentFilterError(LLMError):
    """Response blocked by the provider's safety filters."""

    pass


class ServiceUnavailableError(LLMError):
    """500/502/503 or connection failure on the provider side."""

    pass


class ModelNotFoundError(LLMError):
    """Model identifier not recognized."""

    pass


class EmptyResponseError(LLMError):
    """Provider returned no text content."""

    pass


class ProviderError(LLMError):
    """Every configured provider failed for a single gateway call.

    Fatal to the current generation stage.

    Attributes:
        attempted: Provider names in the order they were tried.
        errors: Last error message per attempted provider.
    """

    def __init__(
        self,
        message: str,
        attempted: list[str] | None = None,
        errors: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.attempted = list(attempted or [])
        self.errors = dict(errors or {})

    def __str__(self) -> str:
        base = super().__str__()
        if self.attempted:
            return f"{base} (attempted: {', '.join(self.attempted)})"
        return base
