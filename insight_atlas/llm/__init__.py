"""LLM provider abstraction layer.

Vendor-neutral access to Anthropic and OpenAI with single-step fallback.
"""

from .errors import (
    AuthenticationError,
    ContentFilterError,
    EmptyResponseError,
    InvalidRequestError,
    LLMError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
    ServiceUnavailableError,
    TimeoutError,
)
from .gateway import ModelGateway
from .models import GatewayResult, LLMRequest, LLMResponse, Usage

__all__ = [
    "ModelGateway",
    "GatewayResult",
    "LLMRequest",
    "LLMResponse",
    "Usage",
    "LLMError",
    "AuthenticationError",
    "RateLimitError",
    "TimeoutError",
    "InvalidRequestError",
    "ContentFilterError",
    "ServiceUnavailableError",
    "ModelNotFoundError",
    "EmptyResponseError",
    "ProviderError",
]
