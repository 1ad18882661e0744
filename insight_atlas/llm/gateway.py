"""Model gateway with primary/secondary provider fallback.

A single `invoke` tries the primary provider once and, on any failure,
the secondary provider once. Retrying a whole stage is the caller's
decision, not the gateway's.
"""

import asyncio
import logging
import os

from .errors import EmptyResponseError, LLMError, ProviderError, TimeoutError
from .models import GatewayResult, LLMRequest
from .providers.anthropic import AnthropicProvider
from .providers.base import LLMProvider
from .providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)


class ModelGateway:
    """Invoke one of two interchangeable text-generation providers.

    Configuration (env vars):
    - LLM_PRIMARY_PROVIDER: Provider tried first (default: "anthropic")
    - LLM_TIMEOUT_SECONDS: Timeout per provider attempt (default: 180)
    - LLM_MAX_CONCURRENCY: Concurrent outbound calls across all jobs (default: 4)
    """

    DEFAULT_PRIMARY = "anthropic"
    DEFAULT_TIMEOUT = 180.0
    DEFAULT_MAX_CONCURRENCY = 4

    def __init__(
        self,
        providers: dict[str, LLMProvider] | None = None,
        primary: str | None = None,
        timeout: float | None = None,
        max_concurrency: int | None = None,
    ):
        """Initialize the gateway.

        Args:
            providers: Provider instances keyed by name. Defaults to
                Anthropic and OpenAI built from environment credentials.
            primary: Name of the provider to try first.
            timeout: Per-attempt timeout in seconds.
            max_concurrency: Upper bound on in-flight provider calls.
        """
        self._timeout = (
            timeout
            if timeout is not None
            else float(os.environ.get("LLM_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
        )
        max_concurrency = (
            max_concurrency
            if max_concurrency is not None
            else int(os.environ.get("LLM_MAX_CONCURRENCY", self.DEFAULT_MAX_CONCURRENCY))
        )
        self._providers: dict[str, LLMProvider] = providers or {
            "anthropic": AnthropicProvider(timeout=self._timeout),
            "openai": OpenAIProvider(timeout=self._timeout),
        }
        primary = primary or os.environ.get("LLM_PRIMARY_PROVIDER", self.DEFAULT_PRIMARY)
        if primary not in self._providers:
            raise ValueError(f"Unknown provider: {primary}. Available: {list(self._providers)}")

        # Primary first, then the remaining provider(s) in declaration order
        self._order = [primary] + [name for name in self._providers if name != primary]
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    @property
    def provider_order(self) -> list[str]:
        return list(self._order)

    @property
    def timeout(self) -> float:
        return self._timeout

    def is_provider_available(self, name: str) -> bool:
        provider = self._providers.get(name)
        return provider is not None and provider.is_configured()

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 16000,
        temperature: float = 0.7,
    ) -> GatewayResult:
        """Generate text, falling back to the secondary provider on failure.

        Args:
            system_prompt: System instructions.
            user_prompt: User turn content.
            max_tokens: Completion token ceiling.
            temperature: Sampling temperature (0-1).

        Returns:
            Content and the provider that produced it.

        Raises:
            ProviderError: Every provider was unavailable or failed.
        """
        request = LLMRequest(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        attempted: list[str] = []
        errors: dict[str, str] = {}

        for name in self._order:
            attempted.append(name)
            provider = self._providers[name]

            if not provider.is_configured():
                logger.warning("Provider %s not configured, falling back", name)
                errors[name] = "not configured"
                continue

            try:
                response = await self._attempt(provider, request)
            except LLMError as e:
                errors[name] = str(e)
                logger.warning(
                    "Provider %s failed: %s",
                    name,
                    str(e),
                    extra={"provider": name, "error_type": type(e).__name__},
                )
                continue
            except Exception as e:
                errors[name] = str(e) or type(e).__name__
                logger.error(
                    "Provider %s raised unexpected error: %s",
                    name,
                    errors[name],
                    exc_info=True,
                    extra={"provider": name},
                )
                continue

            logger.info(
                "LLM request succeeded",
                extra={
                    "provider": response.provider,
                    "model": response.model,
                    "latency_ms": response.latency_ms,
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "fallback": name != self._order[0],
                },
            )
            return GatewayResult(
                content=response.text or "",
                provider=response.provider,
                model=response.model,
                latency_ms=response.latency_ms,
                attempted=list(attempted),
                usage=response.usage,
            )

        raise ProviderError(
            "All model providers failed",
            attempted=attempted,
            errors=errors,
        )

    async def _attempt(self, provider: LLMProvider, request: LLMRequest):
        """One bounded provider call; empty output counts as a failure."""
        async with self._semaphore:
            try:
                response = await asyncio.wait_for(provider.generate(request), timeout=self._timeout)
            except asyncio.TimeoutError as e:
                raise TimeoutError(
                    f"{provider.name} did not respond within {self._timeout}s",
                    provider=provider.name,
                ) from e

        if not response.text or not response.text.strip():
            raise EmptyResponseError("Provider returned no text content", provider=provider.name)
        return response
