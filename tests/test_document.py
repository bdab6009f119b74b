"""Tests for attaching find_or_create to document classes."""

import asyncio
from typing import ClassVar

from beanie import Document

from conftest import FakeDocument, make_user_model, seed
from findorcreate.config import FindOrCreateOptions
from findorcreate.document import (
    FindOrCreateDocument,
    FindOrCreateMixin,
    find_or_create_plugin,
)
from findorcreate.models import FindOrCreateStatus


def test_document_base_is_a_beanie_document_with_state_management() -> None:
    class Account(FindOrCreateDocument):
        email: str

    assert issubclass(Account, Document)
    assert Account.Settings.use_state_management
    assert Account.find_or_create.__self__ is Account
    assert Account.find_or_create_options is None


def test_mixin_binds_to_the_model() -> None:
    User = make_user_model()

    class Member(FindOrCreateMixin, User):
        find_or_create_options: ClassVar[dict] = {"status": True}

    async def run() -> None:
        status = await Member.find_or_create({"email": "a@x.com"}, {"name": "A"})

        assert isinstance(status, FindOrCreateStatus)
        assert isinstance(status.result, Member)
        assert status.is_new

    asyncio.run(run())


def test_mixin_callback_shape() -> None:
    User = make_user_model()

    class Member(FindOrCreateMixin, User):
        pass

    async def run() -> None:
        done = asyncio.Event()
        calls = []

        def callback(err, result, was_updated, is_new) -> None:
            calls.append((err, result.email, was_updated, is_new))
            done.set()

        assert Member.find_or_create({"email": "a@x.com"}, callback) is None
        await done.wait()

        assert calls == [(None, "a@x.com", True, True)]

    asyncio.run(run())


def test_mixin_status_coroutine() -> None:
    User = make_user_model()

    class Member(FindOrCreateMixin, User):
        pass

    async def run() -> None:
        existing = await seed(Member, email="a@x.com")

        status = await Member.find_or_create_status({"email": "a@x.com"})

        assert status == FindOrCreateStatus(result=existing)

    asyncio.run(run())


def test_bare_plugin() -> None:
    User = find_or_create_plugin(make_user_model())

    async def run() -> None:
        doc = await User.find_or_create({"email": "a@x.com"})
        assert doc.email == "a@x.com"

    assert User.find_or_create_options is None
    asyncio.run(run())


def test_plugin_with_model_options() -> None:
    @find_or_create_plugin(appendToArray=True, saveIfFound=True)
    class Tagged(FakeDocument):
        store = []
        find_queries = []
        saves = []

        email: str | None = None
        tags: list[int] = []

    assert Tagged.find_or_create_options == FindOrCreateOptions(
        append_to_array=True, save_if_found=True
    )

    async def run() -> None:
        existing = await seed(Tagged, email="a@x.com", tags=[1])

        doc = await Tagged.find_or_create({"email": "a@x.com"}, {"tags": [2]})

        assert doc is existing
        assert existing.tags == [1, 2]
        assert len(Tagged.saves) == 1

    asyncio.run(run())
