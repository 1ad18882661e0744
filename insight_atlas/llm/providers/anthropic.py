"""Anthropic provider implementation.

Primary provider for every generation stage. Uses the Messages API with a
top-level system prompt and a single user turn.
"""

import os
import time
from typing import Any

from anthropic import (
    AsyncAnthropic,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
)

from ..errors import AuthenticationError, ServiceUnavailableError, TimeoutError
from ..models import LLMRequest, LLMResponse, Usage
from .base import LLMProvider

# Keys this short are placeholders, not credentials
MIN_API_KEY_LENGTH = 10


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API provider."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    CONTENT_FILTER_MARKERS = ("safety", "harmful")

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 120.0,
        default_model: str | None = None,
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
            timeout: SDK-level request timeout in seconds.
            default_model: Model used when the request names none. Defaults
                to ANTHROPIC_MODEL env var.
        """
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self._timeout = timeout
        self._default_model = (
            default_model
            or os.environ.get("ANTHROPIC_MODEL", self.DEFAULT_MODEL)
        )
        self._client: AsyncAnthropic | None = None

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "anthropic"

    @property
    def client(self) -> AsyncAnthropic:
        """Lazy-initialized Anthropic client."""
        if self._client is None:
            if not self.is_configured():
                raise AuthenticationError(
                    "Anthropic API key not configured. Set ANTHROPIC_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncAnthropic(api_key=self._api_key, timeout=self._timeout)
        return self._client

    def is_configured(self) -> bool:
        return bool(self._api_key) and len(self._api_key) > MIN_API_KEY_LENGTH

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request to Anthropic."""
        start_time = time.perf_counter()

        try:
            response = await self.client.messages.create(**self._build_request(request))
        except APITimeoutError as e:
            raise TimeoutError(
                f"Anthropic request timed out after {self._timeout}s",
                provider=self.name,
            ) from e
        except APIConnectionError as e:
            raise ServiceUnavailableError(
                f"Failed to connect to Anthropic: {e}",
                provider=self.name,
            ) from e
        except APIStatusError as e:
            self._raise_for_status(e, "Anthropic")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        return self._parse_response(response, latency_ms)

    def _build_request(self, request: LLMRequest) -> dict[str, Any]:
        """Convert LLMRequest to Anthropic API format."""
        return {
            "model": request.model or self._default_model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }

    def _parse_response(self, response: Any, latency_ms: int) -> LLMResponse:
        """Convert Anthropic response to LLMResponse."""
        text_parts = [block.text for block in response.content if block.type == "text"]

        finish_reason_map = {
            "end_turn": "stop",
            "max_tokens": "length",
            "stop_sequence": "stop",
        }

        return LLMResponse(
            text="\n".join(text_parts) if text_parts else None,
            finish_reason=finish_reason_map.get(response.stop_reason, response.stop_reason or "stop"),
            usage=Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            ),
            model=response.model,
            provider=self.name,
            latency_ms=latency_ms,
            request_id=response.id,
        )
