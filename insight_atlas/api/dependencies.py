"""Application service container and FastAPI accessors.

All long-lived services are built once per application in the lifespan
handler and reached through `app.state.services`; nothing is held in
module globals.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from starlette.requests import HTTPConnection

from insight_atlas.cache import ProgressCache, ProgressStore
from insight_atlas.db.mongo import create_client, get_database
from insight_atlas.llm import ModelGateway
from insight_atlas.services import (
    AdmissionController,
    BroadcastHub,
    InMemoryInsightStore,
    InsightService,
    InsightStore,
    MongoInsightStore,
    StageOrchestrator,
)

logger = logging.getLogger(__name__)

DEFAULT_JOB_STORE_BACKEND = "memory"


@dataclass
class AppServices:
    """Every service the API needs, with one lifecycle."""

    cache: ProgressStore
    progress: ProgressCache
    admission: AdmissionController
    hub: BroadcastHub
    store: InsightStore
    gateway: ModelGateway
    insights: InsightService
    trust_user_header: bool = False

    @classmethod
    def build(
        cls,
        gateway: Optional[ModelGateway] = None,
        store: Optional[InsightStore] = None,
        cache: Optional[ProgressStore] = None,
        hub: Optional[BroadcastHub] = None,
        trust_user_header: Optional[bool] = None,
    ) -> AppServices:
        """Wire services together, defaulting each from the environment.

        Configuration (env vars):
        - JOB_STORE_BACKEND: "memory" (default) or "mongo"
        - TRUST_USER_ID_HEADER: Key rate limits on X-User-Id (default: false)
        """
        cache = cache or ProgressStore()
        progress = ProgressCache(cache)
        hub = hub or BroadcastHub()
        gateway = gateway or ModelGateway()
        store = store or cls._store_from_env()
        orchestrator = StageOrchestrator(gateway, store, progress, hub)
        return cls(
            cache=cache,
            progress=progress,
            admission=AdmissionController(cache),
            hub=hub,
            store=store,
            gateway=gateway,
            insights=InsightService(store, progress, orchestrator),
            trust_user_header=(
                trust_user_header
                if trust_user_header is not None
                else os.environ.get("TRUST_USER_ID_HEADER", "").lower() in ("1", "true", "yes")
            ),
        )

    @staticmethod
    def _store_from_env() -> InsightStore:
        backend = os.environ.get("JOB_STORE_BACKEND", DEFAULT_JOB_STORE_BACKEND).lower()
        if backend == "mongo":
            client = create_client()
            return MongoInsightStore(get_database(client), client=client)
        if backend != "memory":
            raise ValueError(f"Unknown JOB_STORE_BACKEND: {backend}. Use 'memory' or 'mongo'.")
        return InMemoryInsightStore()

    async def init(self) -> None:
        await self.cache.init()
        logger.info(
            f"Services started (cache={self.cache.backend}, "
            f"providers={','.join(self.gateway.provider_order)})"
        )

    async def shutdown(self) -> None:
        await self.insights.shutdown()
        self.hub.close()
        await self.cache.shutdown()
        await self.store.close()
        logger.info("Services stopped")


def get_services(request: Request) -> AppServices:
    """FastAPI dependency: the application's service container."""
    return request.app.state.services


def services_for(connection: HTTPConnection) -> AppServices:
    """Service container for any connection type (HTTP or WebSocket)."""
    return connection.app.state.services
