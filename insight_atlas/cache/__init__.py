"""Progress snapshot and counter storage."""

from .memory import MemoryCache
from .progress_store import ProgressCache, ProgressStore

__all__ = ["MemoryCache", "ProgressCache", "ProgressStore"]
