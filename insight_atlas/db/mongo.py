"""MongoDB connection setup using Motor async driver."""

import os
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

DEFAULT_MONGODB_URL = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "insight_atlas"


def create_client(url: Optional[str] = None) -> AsyncIOMotorClient:
    """Create a Motor client from MONGODB_URL (or `url`)."""
    return AsyncIOMotorClient(
        url or os.getenv("MONGODB_URL", DEFAULT_MONGODB_URL),
        # Fail fast if MongoDB is unavailable
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=5000,
    )


def get_database(client: AsyncIOMotorClient, name: Optional[str] = None) -> AsyncIOMotorDatabase:
    """Database handle named by DATABASE_NAME (or `name`)."""
    return client[name or os.getenv("DATABASE_NAME", DEFAULT_DATABASE_NAME)]
