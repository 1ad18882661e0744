"""Persistence for insight jobs and the books they are generated from.

Two backends share one interface:
- InMemoryInsightStore: default; jobs are lost on restart.
- MongoInsightStore: Motor-backed; books are read from the `books`
  collection, jobs live in `insights`.

Callers always receive copies. The orchestrator running a job is the only
writer for that job.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from insight_atlas.models import Book, InsightJob, Section

from .errors import PersistenceError
from .section_merger import merge_sections

logger = logging.getLogger(__name__)

def _apply_updates(job: InsightJob, updates: dict[str, Any]) -> InsightJob:
    """Validated copy of `job` with `updates` applied."""
    data = job.model_dump()
    for key, value in updates.items():
        if key in InsightJob.model_fields:
            data[key] = value
        else:
            logger.warning(f"Unknown field {key} for job update")

    try:
        updated = InsightJob.model_validate(data)
    except ValidationError as e:
        raise PersistenceError(f"Invalid update for job {job.id}: {e}", operation="update_job", job_id=job.id) from e

    # Auto-set completion timestamp
    if "status" in updates and updated.is_terminal() and updated.completed_at is None:
        updated.completed_at = datetime.now(timezone.utc)
    return updated


class InsightStore(ABC):
    """Job and book repository used by the insight service."""

    @abstractmethod
    async def get_book(self, book_id: int) -> Optional[Book]:
        ...

    @abstractmethod
    async def create_job(self, book_id: int) -> InsightJob:
        ...

    @abstractmethod
    async def get_job(self, job_id: int) -> Optional[InsightJob]:
        ...

    @abstractmethod
    async def update_job(self, job_id: int, **updates: Any) -> InsightJob:
        """Apply field updates.

        Raises:
            PersistenceError: Job missing, invalid update or backend failure.
        """

    @abstractmethod
    async def append_section(self, job_id: int, section: Section) -> None:
        """Add one generated section to the stored list.

        The section lands at its merge position (replacing a stored section
        with the same `(type, title)`), so readers always see canonical order.
        """

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryInsightStore(InsightStore):
    """In-memory store, thread-safe via asyncio lock.

    Usage:
        store = InMemoryInsightStore()
        store.seed_book(Book(id=1, title="Deep Work", extracted_text=text))
        job = await store.create_job(book_id=1)
        await store.update_job(job.id, status=JobStatus.generating)
    """

    def __init__(self, books: Optional[list[Book]] = None):
        self._books: dict[int, Book] = {}
        self._jobs: dict[int, InsightJob] = {}
        self._lock = asyncio.Lock()
        self._next_id = 1
        for book in books or []:
            self.seed_book(book)

    def seed_book(self, book: Book) -> None:
        self._books[book.id] = book

    async def get_book(self, book_id: int) -> Optional[Book]:
        book = self._books.get(book_id)
        return book.model_copy() if book else None

    async def create_job(self, book_id: int) -> InsightJob:
        async with self._lock:
            job = InsightJob(id=self._next_id, book_id=book_id)
            self._next_id += 1
            self._jobs[job.id] = job

        logger.debug(f"Created insight job {job.id} for book {book_id}")
        return job.model_copy(deep=True)

    async def get_job(self, job_id: int) -> Optional[InsightJob]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def update_job(self, job_id: int, **updates: Any) -> InsightJob:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise PersistenceError(f"Job {job_id} does not exist", operation="update_job", job_id=job_id)
            updated = _apply_updates(job, updates)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    async def append_section(self, job_id: int, section: Section) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise PersistenceError(f"Job {job_id} does not exist", operation="append_section", job_id=job_id)
            job.sections = merge_sections(job.sections, [section.model_copy(deep=True)])


class MongoInsightStore(InsightStore):
    """MongoDB-backed store.

    Job ids come from an atomic counter document so they stay integers.
    """

    BOOKS_COLLECTION = "books"
    INSIGHTS_COLLECTION = "insights"
    COUNTERS_COLLECTION = "counters"

    def __init__(self, db: AsyncIOMotorDatabase, client: Any = None):
        self._db = db
        self._client = client

    @staticmethod
    def _to_document(job: InsightJob) -> dict[str, Any]:
        doc = job.model_dump(mode="json")
        doc["_id"] = doc.pop("id")
        # Keep timestamps native for range queries
        doc["created_at"] = job.created_at
        doc["completed_at"] = job.completed_at
        return doc

    @staticmethod
    def _to_job(doc: dict[str, Any]) -> InsightJob:
        data = dict(doc)
        data["id"] = data.pop("_id")
        for key in ("created_at", "completed_at"):
            value = data.get(key)
            if isinstance(value, datetime) and value.tzinfo is None:
                data[key] = value.replace(tzinfo=timezone.utc)
        return InsightJob.model_validate(data)

    async def _next_job_id(self) -> int:
        counter = await self._db[self.COUNTERS_COLLECTION].find_one_and_update(
            {"_id": self.INSIGHTS_COLLECTION},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    async def get_book(self, book_id: int) -> Optional[Book]:
        try:
            doc = await self._db[self.BOOKS_COLLECTION].find_one({"_id": book_id})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to load book {book_id}: {e}", operation="get_book") from e
        if doc is None:
            return None
        return Book(
            id=doc["_id"],
            title=doc.get("title", ""),
            author=doc.get("author"),
            extracted_text=doc.get("extracted_text") or doc.get("extractedText") or "",
        )

    async def create_job(self, book_id: int) -> InsightJob:
        try:
            job = InsightJob(id=await self._next_job_id(), book_id=book_id)
            await self._db[self.INSIGHTS_COLLECTION].insert_one(self._to_document(job))
        except PyMongoError as e:
            raise PersistenceError(f"Failed to create job for book {book_id}: {e}", operation="create_job") from e

        logger.debug(f"Created insight job {job.id} for book {book_id}")
        return job

    async def get_job(self, job_id: int) -> Optional[InsightJob]:
        try:
            doc = await self._db[self.INSIGHTS_COLLECTION].find_one({"_id": job_id})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to load job {job_id}: {e}", operation="get_job", job_id=job_id) from e
        return self._to_job(doc) if doc else None

    async def update_job(self, job_id: int, **updates: Any) -> InsightJob:
        job = await self.get_job(job_id)
        if job is None:
            raise PersistenceError(f"Job {job_id} does not exist", operation="update_job", job_id=job_id)

        updated = _apply_updates(job, updates)
        try:
            await self._db[self.INSIGHTS_COLLECTION].replace_one({"_id": job_id}, self._to_document(updated))
        except PyMongoError as e:
            raise PersistenceError(f"Failed to update job {job_id}: {e}", operation="update_job", job_id=job_id) from e
        return updated

    async def append_section(self, job_id: int, section: Section) -> None:
        job = await self.get_job(job_id)
        if job is None:
            raise PersistenceError(f"Job {job_id} does not exist", operation="append_section", job_id=job_id)

        sections = merge_sections(job.sections, [section])
        try:
            result = await self._db[self.INSIGHTS_COLLECTION].update_one(
                {"_id": job_id},
                {"$set": {"sections": [s.model_dump(mode="json") for s in sections]}},
            )
        except PyMongoError as e:
            raise PersistenceError(
                f"Failed to append section to job {job_id}: {e}", operation="append_section", job_id=job_id
            ) from e
        if result.matched_count == 0:
            raise PersistenceError(f"Job {job_id} does not exist", operation="append_section", job_id=job_id)

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
