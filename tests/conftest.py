"""Shared fixtures: an in-memory store and a TestClient wired to it."""

from collections import defaultdict

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from mongo_gateway.config import Settings
from mongo_gateway.errors import DatabaseUnavailable
from mongo_gateway.server import create_app

API_KEY = "test-secret"


def _matches(document: dict, filter: dict) -> bool:
    return all(document.get(k) == v for k, v in filter.items())


class FakeStore:
    """In-memory stand-in for ConnectionManager with equality-only filters.

    ``calls`` records every operation that reached the store while ready;
    setting ``fail_with`` makes the next operations raise that exception.
    """

    def __init__(self, ready: bool = True):
        self.is_ready = ready
        self.collections = defaultdict(list)
        self.calls = []
        self.fail_with = None
        self.started = False
        self.closed = False

    async def start(self):
        self.started = True

    async def close(self):
        self.closed = True

    def check_health(self):
        return {
            "status": "connected" if self.is_ready else "disconnected",
            "database": "quantconnect",
        }

    def _check(self, op: str):
        if not self.is_ready:
            raise DatabaseUnavailable()
        self.calls.append(op)
        if self.fail_with is not None:
            raise self.fail_with

    def insert_one(self, collection, document):
        self._check("insert_one")
        stored = {"_id": ObjectId(), **document}
        self.collections[collection].append(stored)
        return str(stored["_id"])

    def insert_many(self, collection, documents):
        self._check("insert_many")
        for doc in documents:
            self.collections[collection].append({"_id": ObjectId(), **doc})
        return len(documents)

    def find_many(self, collection, filter, limit):
        self._check("find_many")
        return [d for d in self.collections[collection] if _matches(d, filter)][:limit]

    def update_one(self, collection, filter, update):
        self._check("update_one")
        for doc in self.collections[collection]:
            if _matches(doc, filter):
                before = dict(doc)
                doc.update(update["$set"])
                return 1, int(doc != before)
        return 0, 0

    def delete_one(self, collection, filter):
        self._check("delete_one")
        docs = self.collections[collection]
        for i, doc in enumerate(docs):
            if _matches(doc, filter):
                del docs[i]
                return 1
        return 0


@pytest.fixture
def settings():
    return Settings(api_key=API_KEY)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def app(settings, store):
    return create_app(settings, store=store)


@pytest.fixture
def client(app):
    """TestClient without lifespan, so the fake store is used as configured."""
    return TestClient(app, raise_server_exceptions=False)
