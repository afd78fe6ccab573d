import copy
from typing import Any, Dict, Iterable, List, Optional

import pytest
from passlib.context import CryptContext
from pymongo.errors import AutoReconnect, OperationFailure, ServerSelectionTimeoutError

from auth import SessionAuth
from store import DocumentStore

ADMIN_EMAIL = "admin@portfolio.dev"
ADMIN_PASSWORD = "correct-horse"


class FakeChangeStream:
    """Context-managed iterator over canned change events."""

    def __init__(self, events: Iterable[Dict[str, Any]]):
        self._events = list(events)
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def __iter__(self):
        return iter(self._events)

    def close(self):
        self.closed = True


class FakeCollection:
    """
    Stand-in for the three pymongo Collection calls the store makes:
    find_one, replace_one and watch.
    """

    def __init__(
        self,
        records: Optional[Dict[str, Dict[str, Any]]] = None,
        fail_reads: bool = False,
        fail_writes: bool = False,
        changes: Optional[List[Dict[str, Any]]] = None,
    ):
        self.records = copy.deepcopy(records or {})
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.changes = changes
        self.writes: List[Dict[str, Any]] = []

    def find_one(self, query):
        if self.fail_reads:
            raise ServerSelectionTimeoutError("no servers available")
        return copy.deepcopy(self.records.get(query["_id"]))

    def replace_one(self, query, replacement, upsert=False):
        if self.fail_writes:
            raise AutoReconnect("connection lost")
        assert upsert
        self.records[query["_id"]] = copy.deepcopy(replacement)
        self.writes.append(copy.deepcopy(replacement))

    def watch(self, pipeline=None, full_document=None):
        if self.changes is None:
            raise OperationFailure("The $changeStream stage is only supported on replica sets")
        return FakeChangeStream(self.changes)


@pytest.fixture
def collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def store(collection: FakeCollection) -> DocumentStore:
    return DocumentStore(collection, "data")


@pytest.fixture
def auth() -> SessionAuth:
    context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
    return SessionAuth(
        ADMIN_EMAIL,
        context.hash(ADMIN_PASSWORD),
        "test-secret",
        expire_minutes=30,
        pwd_context=context,
    )
