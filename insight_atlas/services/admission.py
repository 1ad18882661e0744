"""Fixed-window admission control for expensive operations.

Each (principal, operation class) pair owns one counter in the
ProgressStore under `rl:<class>:<principal>`. The first hit in a window
sets the counter's expiry to the window length; the window resets when
the key expires.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from insight_atlas.cache import ProgressStore

logger = logging.getLogger(__name__)


class OperationClass(str, Enum):
    """Request categories with independent limits."""
    general = "general"
    heavy = "heavy"
    auth = "auth"
    upload = "upload"
    export = "export"
    generation = "generation"
    audio = "audio"


@dataclass(frozen=True)
class RateLimitRule:
    """Ceiling for one operation class."""

    limit: int
    window_seconds: int
    error: str
    message: str


DEFAULT_RULES: dict[OperationClass, RateLimitRule] = {
    OperationClass.general: RateLimitRule(
        100, 60, "Too many requests", "Please wait before making more requests"
    ),
    OperationClass.heavy: RateLimitRule(
        10, 60, "Rate limit exceeded", "This endpoint has stricter limits. Please wait before trying again."
    ),
    OperationClass.auth: RateLimitRule(
        5, 900, "Too many authentication attempts", "Please wait 15 minutes before trying again."
    ),
    OperationClass.upload: RateLimitRule(
        20, 3600, "Upload limit reached",
        "You can upload up to 20 files per hour. Please wait before uploading more.",
    ),
    OperationClass.export: RateLimitRule(
        30, 3600, "Export limit reached",
        "You can export up to 30 documents per hour. Please wait before exporting more.",
    ),
    OperationClass.generation: RateLimitRule(
        5, 3600, "Generation limit reached",
        "Insight generation is resource-intensive. You can generate up to 5 insights per hour.",
    ),
    OperationClass.audio: RateLimitRule(
        10, 3600, "Audio generation limit reached", "You can generate up to 10 audio narrations per hour."
    ),
}


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of one admission check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int]
    reset_after: int


def principal_key_for(
    user_id: Optional[str],
    forwarded_for: Optional[str],
    client_host: Optional[str],
    operation_class: OperationClass = OperationClass.general,
) -> str:
    """Identify who a request counts against.

    Authenticated callers are keyed by user id, everyone else by IP (first
    X-Forwarded-For entry, then the socket peer). The auth class is always
    keyed by IP.
    """
    if user_id and operation_class != OperationClass.auth:
        return f"user:{user_id}"

    ip = None
    if forwarded_for:
        ip = forwarded_for.split(",")[0].strip() or None
    ip = ip or client_host or "unknown"
    return f"ip:{ip}"


class AdmissionController:
    """Decide whether a request is within its operation class's rate."""

    KEY_PREFIX = "rl:"

    def __init__(
        self,
        store: ProgressStore,
        rules: Optional[dict[OperationClass, RateLimitRule]] = None,
    ):
        self._store = store
        self._rules = dict(DEFAULT_RULES)
        if rules:
            self._rules.update(rules)

    def rule_for(self, operation_class: OperationClass) -> RateLimitRule:
        return self._rules[OperationClass(operation_class)]

    @classmethod
    def key_for(cls, principal_key: str, operation_class: OperationClass) -> str:
        return f"{cls.KEY_PREFIX}{OperationClass(operation_class).value}:{principal_key}"

    async def check(self, principal_key: str, operation_class: OperationClass) -> AdmissionDecision:
        """Count one request and decide whether it is admitted.

        Args:
            principal_key: Output of `principal_key_for`.
            operation_class: Class whose ceiling applies.

        Returns:
            The decision. Denials carry `retry_after` in whole seconds,
            between 1 and the window length.
        """
        rule = self.rule_for(operation_class)
        key = self.key_for(principal_key, operation_class)

        hits = await self._store.incr(key)
        if hits == 1:
            await self._store.expire(key, rule.window_seconds)
            reset_after = rule.window_seconds
        else:
            remaining_ttl = await self._store.ttl(key)
            if remaining_ttl < 0:
                # Counter lost its expiry (e.g. backend switch); start a new window
                await self._store.expire(key, rule.window_seconds)
                remaining_ttl = rule.window_seconds
            reset_after = max(1, min(rule.window_seconds, remaining_ttl))

        remaining = max(0, rule.limit - hits)
        if hits > rule.limit:
            logger.info(
                f"Admission denied for {principal_key} ({OperationClass(operation_class).value}): "
                f"{hits}/{rule.limit} in window"
            )
            return AdmissionDecision(
                allowed=False,
                limit=rule.limit,
                remaining=0,
                retry_after=reset_after,
                reset_after=reset_after,
            )

        return AdmissionDecision(
            allowed=True,
            limit=rule.limit,
            remaining=remaining,
            retry_after=None,
            reset_after=reset_after,
        )
