"""OpenAI provider implementation.

Secondary provider: used when Anthropic is unconfigured, times out or
errors. Uses the Chat Completions API.
"""

import os
import time
from typing import Any

from openai import AsyncOpenAI, APIConnectionError, APIStatusError, APITimeoutError

from ..errors import AuthenticationError, ServiceUnavailableError, TimeoutError
from ..models import LLMRequest, LLMResponse, Usage
from .base import LLMProvider


class OpenAIProvider(LLMProvider):
    """OpenAI Chat Completions API provider."""

    DEFAULT_MODEL = "gpt-4o"
    CONTENT_FILTER_MARKERS = ("content_filter", "safety")

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 120.0,
        default_model: str | None = None,
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key. Defaults to OPENAI_API_KEY env var.
            timeout: SDK-level request timeout in seconds.
            default_model: Model used when the request names none. Defaults
                to OPENAI_MODEL env var.
        """
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._timeout = timeout
        self._default_model = (
            default_model
            or os.environ.get("OPENAI_MODEL", self.DEFAULT_MODEL)
        )
        self._client: AsyncOpenAI | None = None

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "openai"

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-initialized OpenAI client."""
        if self._client is None:
            if not self.is_configured():
                raise AuthenticationError(
                    "OpenAI API key not configured. Set OPENAI_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request to OpenAI."""
        start_time = time.perf_counter()

        try:
            response = await self.client.chat.completions.create(**self._build_request(request))
        except APITimeoutError as e:
            raise TimeoutError(
                f"OpenAI request timed out after {self._timeout}s",
                provider=self.name,
            ) from e
        except APIConnectionError as e:
            raise ServiceUnavailableError(
                f"Failed to connect to OpenAI: {e}",
                provider=self.name,
            ) from e
        except APIStatusError as e:
            self._raise_for_status(e, "OpenAI")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        return self._parse_response(response, latency_ms)

    def _build_request(self, request: LLMRequest) -> dict[str, Any]:
        """Convert LLMRequest to OpenAI API format."""
        return {
            "model": request.model or self._default_model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

    def _parse_response(self, response: Any, latency_ms: int) -> LLMResponse:
        """Convert OpenAI response to LLMResponse."""
        choice = response.choices[0]
        usage = response.usage

        return LLMResponse(
            text=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=Usage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            model=response.model,
            provider=self.name,
            latency_ms=latency_ms,
            request_id=response.id,
        )
