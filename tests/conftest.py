"""Pytest fixtures for testing."""

import json
import time
from collections.abc import AsyncGenerator
from typing import Any, Optional

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from insight_atlas.api.dependencies import AppServices
from insight_atlas.api.main import create_app
from insight_atlas.cache import ProgressCache, ProgressStore
from insight_atlas.llm import GatewayResult, ProviderError
from insight_atlas.models import Book
from insight_atlas.services import BroadcastHub, InMemoryInsightStore, StageOrchestrator
from insight_atlas.services import prompts


ANALYSIS_RESPONSE = {
    "bookMetadata": {"title": "Deep Work", "author": "Cal Newport"},
    "classification": {"primaryCategory": "Productivity"},
    "coreConcepts": [
        {"conceptName": "Deep Work", "chapterSource": "Chapter 1", "briefDescription": "Focused effort"},
        {"conceptName": "Shallow Work", "chapterSource": "Chapter 2", "briefDescription": "Logistics"},
        {"conceptName": "Attention Residue", "chapterSource": "Chapter 3", "briefDescription": "Switching cost"},
    ],
}

# Streamed out of canonical order on purpose
CONTENT_SECTIONS = [
    {"type": "quickGlance", "title": "Quick Glance", "content": "Deep work is the ability to focus without distraction."},
    {"type": "keyTakeaways", "title": "Key Takeaways", "content": "Protect your attention. Schedule depth."},
    {
        "type": "conceptExplanation",
        "title": "Deep Work",
        "content": "Professional activities performed in a state of distraction-free concentration.",
        "visualType": "flowDiagram",
        "visualData": {"nodes": [{"id": "1", "label": "Plan"}, "Focus", {"name": "Rest"}]},
    },
    {
        "type": "actionBox",
        "title": "Build a Deep Work Ritual",
        "content": "Try these steps this week.",
        "metadata": {"actionSteps": ["Block two hours daily", "Silence notifications"]},
    },
    {"type": "structureMap", "title": "Structure Map", "content": "Chapter 1 maps to Deep Work."},
]

GAP_RESPONSE = {
    "gapsFound": ["Missing foundational narrative", "Too few practical examples"],
    "generatedContent": [
        {"type": "foundationalNarrative", "title": "Origin Story", "content": "Newport wrote this book while a professor."},
        {"type": "practicalExample", "title": "Sarah's Morning", "content": "Sarah closes her inbox at 9am."},
    ],
    "completenessScore": 88,
}

AUDIO_RESPONSE = "Welcome to your Insight Atlas guide... Let's begin."


def content_stream(sections: list[dict]) -> str:
    """Newline-delimited section records as the content stage emits them."""
    lines = [json.dumps({"type": "section", "section": s}) for s in sections]
    lines.append(json.dumps({"type": "complete"}))
    return "\n".join(lines)


class ScriptedGateway:
    """Model gateway stand-in returning canned output per stage.

    Stages are recognised by their system prompt. Stages listed in
    `fail_stages` raise ProviderError as if both providers failed.
    """

    STAGES = {
        prompts.ANALYSIS_SYSTEM_PROMPT: "analysis",
        prompts.CONTENT_SYSTEM_PROMPT: "content",
        prompts.GAP_SYSTEM_PROMPT: "gap_analysis",
        prompts.AUDIO_SYSTEM_PROMPT: "audio",
    }

    def __init__(
        self,
        responses: Optional[dict[str, str]] = None,
        fail_stages: tuple[str, ...] = (),
    ):
        self.responses = {
            "analysis": json.dumps(ANALYSIS_RESPONSE),
            "content": content_stream(CONTENT_SECTIONS),
            "gap_analysis": "```json\n" + json.dumps(GAP_RESPONSE) + "\n```",
            "audio": AUDIO_RESPONSE,
        }
        self.responses.update(responses or {})
        self.fail_stages = set(fail_stages)
        self.calls: list[dict[str, Any]] = []

    @property
    def provider_order(self) -> list[str]:
        return ["anthropic", "openai"]

    def is_provider_available(self, name: str) -> bool:
        return True

    async def invoke(self, system_prompt, user_prompt, max_tokens=16000, temperature=0.7) -> GatewayResult:
        stage = self.STAGES[system_prompt]
        self.calls.append({"stage": stage, "user_prompt": user_prompt, "max_tokens": max_tokens})
        if stage in self.fail_stages:
            raise ProviderError(
                "All model providers failed",
                attempted=["anthropic", "openai"],
                errors={"anthropic": "timeout", "openai": "server error"},
            )
        return GatewayResult(
            content=self.responses[stage],
            provider="anthropic",
            model="claude-sonnet-4-20250514",
            attempted=["anthropic"],
        )


@pytest.fixture
def sample_book() -> Book:
    """A book with 3000 extracted words."""
    return Book(
        id=1,
        title="Deep Work",
        author="Cal Newport",
        extracted_text=" ".join(["focus"] * 3000),
    )


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def job_store(sample_book: Book) -> InMemoryInsightStore:
    return InMemoryInsightStore([sample_book])


@pytest_asyncio.fixture
async def cache_store() -> AsyncGenerator[ProgressStore, None]:
    """Memory-only progress store with lifecycle."""
    store = ProgressStore(redis_url="")
    await store.init()
    yield store
    await store.shutdown()


@pytest.fixture
def progress_cache(cache_store: ProgressStore) -> ProgressCache:
    return ProgressCache(cache_store)


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub()


@pytest.fixture
def orchestrator(gateway, job_store, progress_cache, hub) -> StageOrchestrator:
    return StageOrchestrator(gateway, job_store, progress_cache, hub)


async def drain(subscriber) -> list[dict]:
    """Every message currently queued for `subscriber`."""
    messages = []
    while subscriber.pending:
        message = await subscriber.receive(timeout=1)
        if message is None:
            break
        messages.append(message)
    return messages


@pytest.fixture
def gateway_factory():
    """Build ScriptedGateway instances with custom responses or failures."""
    return ScriptedGateway


@pytest.fixture
def drain_events():
    return drain


@pytest.fixture
def make_client(job_store):
    """Build a TestClient around a fully wired app.

    Usage:
        with make_client(gateway=ScriptedGateway()) as client:
            client.post("/api/insights/generate", json={"bookId": 1})
    """
    def _make(gateway=None, store=None, trust_user_header=False) -> TestClient:
        services = AppServices.build(
            gateway=gateway or ScriptedGateway(),
            store=store or job_store,
            cache=ProgressStore(redis_url=""),
            hub=BroadcastHub(),
            trust_user_header=trust_user_header,
        )
        return TestClient(create_app(services))

    return _make


def wait_until_finished(client, job_id: int, timeout: float = 5.0) -> dict:
    """Poll the status endpoint until the job completes or fails."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/api/insights/{job_id}/status").json()["data"]
        if data["status"] in ("completed", "failed"):
            return data
        time.sleep(0.1)
    raise AssertionError(f"Job {job_id} did not finish within {timeout}s")


@pytest.fixture
def poll_status():
    return wait_until_finished
