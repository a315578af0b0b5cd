"""MongoDB connection lifecycle and the store operations handlers rely on."""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from contextlib import contextmanager
from typing import Any

from bson.errors import BSONError
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .errors import DatabaseUnavailable, DriverError

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Owns the single shared MongoDB client.

    ``connect()`` never raises on connection failure; ``start()`` keeps retrying
    in a background task every ``retry_delay`` seconds until a connection is
    made or ``close()`` cancels it. Every store operation checks ``is_ready``
    before touching the client and raises ``DatabaseUnavailable`` otherwise.
    """

    def __init__(
        self,
        uri: str,
        database_name: str,
        server_selection_timeout_ms: int = 10000,
        socket_timeout_ms: int = 45000,
        retry_delay: float = 5.0,
        client_factory: Callable[..., Any] = MongoClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.uri = uri
        self.database_name = database_name
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.socket_timeout_ms = socket_timeout_ms
        self.retry_delay = retry_delay
        self._client_factory = client_factory
        self._sleep = sleep
        self._client = None
        self._database = None
        self._is_ready = False
        self._closed = False
        self._lock = threading.Lock()
        self._retry_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings) -> "ConnectionManager":
        return cls(
            settings.mongo_uri,
            settings.mongo_db_name,
            server_selection_timeout_ms=settings.server_selection_timeout_ms,
            socket_timeout_ms=settings.socket_timeout_ms,
            retry_delay=settings.retry_delay_seconds,
        )

    @property
    def is_ready(self) -> bool:
        return self._is_ready

    @property
    def retry_task(self) -> asyncio.Task | None:
        return self._retry_task

    # ── Lifecycle ─────────────────────────────────────────────────────

    def connect(self) -> bool:
        """Make one connection attempt. Returns True on success."""
        logger.info("Connecting to MongoDB database %r...", self.database_name)
        client = None
        try:
            client = self._client_factory(
                self.uri,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                socketTimeoutMS=self.socket_timeout_ms,
                tz_aware=True,
            )
            client.admin.command("ping")
            database = client[self.database_name]
        except PyMongoError as e:
            logger.error("MongoDB connection failed: %s", e)
            if client is not None:
                client.close()
            with self._lock:
                self._client = None
                self._database = None
                self._is_ready = False
            return False

        with self._lock:
            closed = self._closed
            if not closed:
                self._client = client
                self._database = database
                self._is_ready = True
        if closed:
            # close() ran while this attempt was in flight
            client.close()
            return False
        logger.info("MongoDB connected successfully")
        return True

    async def start(self) -> None:
        """Attempt to connect; on failure keep retrying in the background."""
        self._closed = False
        connected = await asyncio.to_thread(self.connect)
        if not connected:
            self._schedule_retry()

    def _schedule_retry(self) -> None:
        if self._retry_task is None or self._retry_task.done():
            self._retry_task = asyncio.create_task(self._retry_loop(), name="mongo-reconnect")

    async def _retry_loop(self) -> None:
        while not self._closed:
            logger.info("Retrying MongoDB connection in %ss", self.retry_delay)
            await self._sleep(self.retry_delay)
            if self._closed:
                return
            if await asyncio.to_thread(self.connect):
                return

    async def close(self) -> None:
        """Cancel any pending retry and close the client. Safe to call twice."""
        with self._lock:
            self._closed = True
        task, self._retry_task = self._retry_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        with self._lock:
            client = self._client
            self._client = None
            self._database = None
            self._is_ready = False
        if client is not None:
            client.close()
            logger.info("MongoDB connection closed")

    def check_health(self) -> dict:
        """Return connection status without doing any I/O."""
        return {
            "status": "connected" if self._is_ready else "disconnected",
            "database": self.database_name,
        }

    # ── Store operations ──────────────────────────────────────────────

    @contextmanager
    def _driver_call(self, operation: str):
        try:
            yield
        except (PyMongoError, BSONError, OverflowError) as e:
            logger.error("%s failed: %s", operation, e)
            raise DriverError(str(e)) from e

    def get_collection(self, name: str) -> Collection:
        if not self._is_ready or self._database is None:
            raise DatabaseUnavailable()
        return self._database[name]

    def insert_one(self, collection: str, document: dict) -> str:
        with self._driver_call("insert_one"):
            coll = self.get_collection(collection)
            result = coll.insert_one(document)
        return str(result.inserted_id)

    def insert_many(self, collection: str, documents: list[dict]) -> int:
        with self._driver_call("insert_many"):
            coll = self.get_collection(collection)
            result = coll.insert_many(documents)
        return len(result.inserted_ids)

    def find_many(self, collection: str, filter: dict, limit: int) -> list[dict]:
        with self._driver_call("find"):
            coll = self.get_collection(collection)
            return list(coll.find(filter).limit(limit))

    def update_one(self, collection: str, filter: dict, update: dict) -> tuple[int, int]:
        """Apply ``update`` to the first match. Returns (matched, modified)."""
        with self._driver_call("update_one"):
            coll = self.get_collection(collection)
            result = coll.update_one(filter, update)
        return result.matched_count, result.modified_count

    def delete_one(self, collection: str, filter: dict) -> int:
        with self._driver_call("delete_one"):
            coll = self.get_collection(collection)
            result = coll.delete_one(filter)
        return result.deleted_count
