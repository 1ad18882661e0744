"""LLM data models.

Vendor-neutral request and response models for text generation.
"""

from pydantic import BaseModel, Field


class LLMRequest(BaseModel):
    """Vendor-neutral single-turn generation request."""

    system_prompt: str
    user_prompt: str
    max_tokens: int = Field(default=16000, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    model: str | None = None  # provider default when unset


class Usage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    """Vendor-neutral response from one provider."""

    text: str | None
    finish_reason: str
    usage: Usage
    model: str
    provider: str
    latency_ms: int
    request_id: str | None = None


class GatewayResult(BaseModel):
    """Outcome of a gateway invocation.

    `attempted` lists every provider that was tried, including the one
    that produced `content`.
    """

    content: str
    provider: str
    model: str
    latency_ms: int = 0
    attempted: list[str] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
