"""
# Database Management Module

This module owns the **MongoDB connection** for the Tasting Notes API. The `DatabaseManager`
wraps a Motor `AsyncIOMotorClient`, connects with exponential backoff, detects whether the
deployment supports multi-document transactions and creates the indexes the feed queries
rely on.

## Usage

```python
from tasting_notes.database import db_manager

await db_manager.connect()            # FastAPI lifespan startup
notes = db_manager.get_collection("notes")
await db_manager.disconnect()         # FastAPI lifespan shutdown
```

Services do not use collections directly; they go through `MongoDocumentStore`, which is
built on top of this manager.

## Transactions

Follow edges, request acceptance, family links and likes are written with
`DocumentStore.run_transaction`. That needs a replica set or a `mongos` router;
`transactions_supported` records what `connect()` detected.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from tasting_notes.config import settings
from tasting_notes.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

IndexKeys = Union[str, Sequence[Tuple[str, int]]]

# collection -> [(keys, options)]
FEED_INDEXES: Dict[str, List[Tuple[IndexKeys, Dict[str, Any]]]] = {
    "users": [
        ("email", {"unique": True, "partialFilterExpression": {"email": {"$type": "string"}}}),
        ("username", {}),
        ([("settings.is_private", 1), ("username", 1), ("_id", 1)], {}),
    ],
    "notes": [
        ([("owner_id", 1), ("date", -1), ("_id", 1)], {}),
        ([("visibility", 1), ("date", -1), ("_id", 1)], {}),
        ([("shared_with", 1), ("date", -1), ("_id", 1)], {}),
        ([("visibility", 1), ("created_at", -1), ("_id", 1)], {}),
    ],
    "activities": [
        ([("actor_id", 1), ("timestamp", -1), ("_id", 1)], {}),
    ],
    "follow_requests": [
        ([("from_id", 1), ("to_id", 1), ("status", 1)], {}),
        ([("to_id", 1), ("status", 1), ("created_at", -1)], {}),
    ],
    "notifications": [
        ([("recipient_id", 1), ("timestamp", -1), ("_id", 1)], {}),
        ([("recipient_id", 1), ("read", 1)], {}),
    ],
    "bookmarks": [
        ([("user_id", 1), ("created_at", -1)], {}),
        ("note_id", {}),
    ],
    "restaurants": [
        ([("name_key", 1), ("_id", 1)], {}),
    ],
    "menu_items": [
        ([("restaurant_id", 1), ("name_key", 1), ("_id", 1)], {}),
        ([("name_key", 1), ("_id", 1)], {}),
    ],
    "recipe_creators": [
        ([("name_key", 1), ("_id", 1)], {}),
    ],
}


class DatabaseManager:
    """
    Manages the Motor client, database handle and index lifecycle.

    Attributes:
        client (`Optional[AsyncIOMotorClient]`): `None` until `connect()` succeeds.
        database (`Optional[AsyncIOMotorDatabase]`): The selected database.
        transactions_supported (`Optional[bool]`): Detected during `connect()`.
    """

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._connection_retries = 3
        # True when connected to a replica set or mongos
        self.transactions_supported: Optional[bool] = None

    def _connection_string(self) -> str:
        if settings.MONGODB_USERNAME and settings.MONGODB_PASSWORD:
            password = settings.MONGODB_PASSWORD.get_secret_value()
            db_logger.debug("Using authenticated connection to MongoDB")
            return (
                f"mongodb://{settings.MONGODB_USERNAME}:{password}@"
                f"{settings.MONGODB_URL.replace('mongodb://', '')}"
            )
        return settings.MONGODB_URL

    async def connect(self):
        """
        Establish the connection with exponential backoff (1s, 2s, ...).

        Raises:
            `ServerSelectionTimeoutError` / `ConnectionFailure`: when every attempt fails.
        """
        if self.client is not None:
            return

        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")

        for attempt in range(self._connection_retries):
            attempt_start = time.time()
            try:
                db_logger.info("Connection attempt %d/%d to MongoDB", attempt + 1, self._connection_retries)
                self.client = AsyncIOMotorClient(
                    self._connection_string(),
                    serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    connectTimeoutMS=settings.MONGODB_CONNECTION_TIMEOUT,
                    tz_aware=True,
                    maxPoolSize=50,
                    minPoolSize=5,
                )
                self.database = self.client[settings.MONGODB_DATABASE]

                ping_start = time.time()
                await self.client.admin.command("ping")
                ping_duration = time.time() - ping_start

                try:
                    hello = await self.client.admin.command({"hello": 1})
                    self.transactions_supported = bool(hello.get("setName") or hello.get("msg") == "isdbgrid")
                except PyMongoError:
                    # Be conservative when detection fails
                    self.transactions_supported = False

                perf_logger.info(
                    "MongoDB connection established in %.3fs (ping: %.3fs)", time.time() - start_time, ping_duration
                )
                db_logger.info(
                    "Connected to MongoDB database %s (transactions supported: %s)",
                    settings.MONGODB_DATABASE,
                    self.transactions_supported,
                )
                return

            except (ServerSelectionTimeoutError, ConnectionFailure) as e:
                perf_logger.warning("Connection attempt %d failed after %.3fs", attempt + 1, time.time() - attempt_start)
                db_logger.warning(
                    "Failed to connect to MongoDB (attempt %d/%d): %s", attempt + 1, self._connection_retries, e
                )
                self.client = None
                self.database = None
                if attempt == self._connection_retries - 1:
                    db_logger.error("All connection attempts failed after %.3fs", time.time() - start_time)
                    raise

                backoff_time = 2**attempt
                db_logger.info("Waiting %.1fs before retry (exponential backoff)", backoff_time)
                await asyncio.sleep(backoff_time)

    async def disconnect(self):
        if self.client is None:
            db_logger.warning("Disconnect called but no active MongoDB connection found")
            return
        start_time = time.time()
        self.client.close()
        self.client = None
        self.database = None
        perf_logger.info("MongoDB disconnection completed in %.3fs", time.time() - start_time)
        db_logger.info("Successfully disconnected from MongoDB")

    async def health_check(self) -> bool:
        """Ping the server. Returns `False` instead of raising."""
        if self.client is None:
            health_logger.warning("Health check requested before connect()")
            return False
        start_time = time.time()
        try:
            await self.client.admin.command("ping")
            perf_logger.debug("Database health check completed in %.3fs", time.time() - start_time)
            return True
        except PyMongoError as e:
            health_logger.error("Database health check failed after %.3fs: %s", time.time() - start_time, e)
            return False

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Return a Motor collection.

        Raises:
            `ConnectionError`: if `connect()` has not been called.
        """
        if self.database is None:
            db_logger.error("Attempted to get collection '%s' without database connection", collection_name)
            raise ConnectionError("Database not connected. Call connect() first.")
        return self.database[collection_name]

    async def create_indexes(self):
        """Create the indexes used by the feed, graph, inbox and catalog queries."""
        start_time = time.time()
        db_logger.info("Starting database index creation process")
        for collection_name, indexes in FEED_INDEXES.items():
            collection = self.get_collection(collection_name)
            for keys, options in indexes:
                await self._create_index_if_not_exists(collection, keys, options)
        perf_logger.info("Database index creation completed in %.3fs", time.time() - start_time)

    async def _create_index_if_not_exists(
        self, collection: AsyncIOMotorCollection, keys: IndexKeys, options: Dict[str, Any]
    ):
        try:
            name = await collection.create_index(keys, **options)
            db_logger.debug("Ensured index %s on %s", name, collection.name)
        except PyMongoError as e:
            db_logger.warning("Failed to create index %s on %s: %s", keys, collection.name, e)


# Global database manager instance
db_manager = DatabaseManager()
