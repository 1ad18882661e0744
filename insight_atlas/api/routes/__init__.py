"""API routes package."""

from . import health, insights, ws

__all__ = ["health", "insights", "ws"]
