"""Shared fixtures.

FakeDocument is an in-memory model honouring the Beanie contract for the
orchestration tests. AsyncMockDatabase binds real Beanie documents to
mongomock for the end-to-end tests.
"""

import os
from typing import Any, ClassVar

import logfire
import mongomock
import pytest
from beanie import init_beanie
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

# Keep spans local during tests
logfire.configure(send_to_logfire=False)

from findorcreate.config import get_settings  # noqa: E402


class FakeDocument(BaseModel):
    """Pydantic document with find_one / is_changed / save backed by a list."""

    model_config = ConfigDict(extra="allow")

    store: ClassVar[list["FakeDocument"]]
    find_queries: ClassVar[list[dict[str, Any]]]
    saves: ClassVar[list[tuple["FakeDocument", dict[str, Any]]]]
    find_error: ClassVar[Exception | None] = None
    save_error: ClassVar[Exception | None] = None

    _saved_state: dict[str, Any] | None = PrivateAttr(default=None)

    @classmethod
    async def find_one(cls, query: dict[str, Any]) -> "FakeDocument | None":
        cls.find_queries.append(query)
        if cls.find_error is not None:
            raise cls.find_error
        for doc in cls.store:
            if _matches(doc, query):
                return doc
        return None

    @property
    def is_changed(self) -> bool:
        return self._saved_state != self.model_dump()

    async def save(self, **kwargs: Any) -> "FakeDocument":
        cls = type(self)
        cls.saves.append((self, kwargs))
        if cls.save_error is not None:
            raise cls.save_error
        if not any(doc is self for doc in cls.store):
            cls.store.append(self)
        self._saved_state = self.model_dump()
        return self


def _matches(doc: FakeDocument, query: dict[str, Any]) -> bool:
    for key, value in query.items():
        # Operator expressions are not evaluated by the fake
        if key.startswith("$") or isinstance(value, dict):
            continue
        if getattr(doc, key, None) != value:
            return False
    return True


def make_user_model() -> type[FakeDocument]:
    class User(FakeDocument):
        store: ClassVar[list[FakeDocument]] = []
        find_queries: ClassVar[list[dict[str, Any]]] = []
        saves: ClassVar[list[tuple[FakeDocument, dict[str, Any]]]] = []

        email: str | None = None
        name: str | None = None
        age: int | None = None
        tags: list[Any] = Field(default_factory=list)

    return User


async def seed(model: type[FakeDocument], **data: Any) -> FakeDocument:
    """Store a document and forget the save it took to get there."""
    doc = model(**data)
    await doc.save()
    model.saves.clear()
    return doc


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch: pytest.MonkeyPatch):
    for key in list(os.environ):
        if key.upper().startswith("FINDORCREATE_"):
            monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def user_model() -> type[FakeDocument]:
    return make_user_model()


# ============================================================================
# In-memory MongoDB for real Beanie documents
# ============================================================================


class AsyncMockCollection:
    """Awaitable facade over a mongomock collection, as Beanie expects."""

    def __init__(self, collection: mongomock.Collection):
        self._collection = collection

    @property
    def name(self) -> str:
        return self._collection.name

    def __getattr__(self, attr: str) -> Any:
        if attr.startswith("_"):
            raise AttributeError(attr)
        method = getattr(self._collection, attr)

        async def call(*args: Any, **kwargs: Any) -> Any:
            return method(*args, **kwargs)

        return call


class AsyncMockDatabase:
    """Awaitable facade over a mongomock database, enough for init_beanie."""

    def __init__(self, database: mongomock.Database):
        self._database = database

    @property
    def client(self) -> mongomock.MongoClient:
        return self._database.client

    @property
    def name(self) -> str:
        return self._database.name

    def __getitem__(self, name: str) -> AsyncMockCollection:
        return AsyncMockCollection(self._database[name])

    async def command(self, command: Any, **kwargs: Any) -> dict[str, Any]:
        # mongomock only answers ping
        if isinstance(command, dict) and "buildInfo" in command:
            return {"version": "7.0.0", "ok": 1.0}
        return self._database.command(command, **kwargs)

    async def list_collection_names(self, **kwargs: Any) -> list[str]:
        return self._database.list_collection_names()


async def init_mock_beanie(*document_models: type) -> mongomock.Database:
    """Bind Beanie documents to a fresh in-memory database."""
    database = mongomock.MongoClient().db
    await init_beanie(
        database=AsyncMockDatabase(database),
        document_models=list(document_models),
        skip_indexes=True,
    )
    return database
