from __future__ import annotations

import json

import httpx
import pytest

from linerelay.app.conversation.contracts import ConversationTurn
from linerelay.app.conversation.service import build_conversation_store
from linerelay.app.conversation.store import (
    InMemoryConversationStore,
    SqliteConversationStore,
)
from linerelay.app.conversation.supabase_store import SupabaseConversationStore
from linerelay.core.errors import ConfigurationError, StorageError
from tests.conftest import build_test_config


@pytest.mark.asyncio
async def test_in_memory_store_returns_empty_history_for_unknown_user() -> None:
    store = InMemoryConversationStore()

    assert await store.list_turns("nobody") == ()


@pytest.mark.asyncio
async def test_in_memory_store_keeps_write_order_without_dedup() -> None:
    store = InMemoryConversationStore()

    await store.append_turn("U1", "user", "hi")
    await store.append_turn("U2", "user", "other")
    await store.append_turn("U1", "assistant", "hello!")
    await store.append_turn("U1", "user", "hi")

    assert await store.list_turns("U1") == (
        ConversationTurn(role="user", content="hi"),
        ConversationTurn(role="assistant", content="hello!"),
        ConversationTurn(role="user", content="hi"),
    )
    sequences = [turn.sequence for turn in store.stored_turns("U1")]
    assert sequences == [1, 3, 4]


@pytest.mark.asyncio
async def test_in_memory_store_rejects_unknown_role() -> None:
    store = InMemoryConversationStore()

    with pytest.raises(StorageError):
        await store.append_turn("U1", "tool", "output")


@pytest.mark.asyncio
async def test_sqlite_store_reads_turns_in_insertion_order(tmp_path) -> None:
    store = SqliteConversationStore(str(tmp_path / "data" / "messages.db"))
    try:
        assert await store.list_turns("U1") == ()

        await store.append_turn("U1", "user", "hi")
        await store.append_turn("U2", "user", "elsewhere")
        await store.append_turn("U1", "assistant", "hello!")

        assert await store.list_turns("U1") == (
            ConversationTurn(role="user", content="hi"),
            ConversationTurn(role="assistant", content="hello!"),
        )
    finally:
        store.close()


@pytest.mark.asyncio
async def test_sqlite_store_history_survives_reopen(tmp_path) -> None:
    path = str(tmp_path / "messages.db")
    first = SqliteConversationStore(path)
    await first.append_turn("U1", "user", "remember me")
    first.close()

    second = SqliteConversationStore(path)
    try:
        assert await second.list_turns("U1") == (
            ConversationTurn(role="user", content="remember me"),
        )
    finally:
        second.close()


@pytest.mark.asyncio
async def test_sqlite_store_wraps_database_errors(tmp_path) -> None:
    store = SqliteConversationStore(str(tmp_path))

    with pytest.raises(StorageError):
        await store.append_turn("U1", "user", "hi")


def _supabase_store(handler) -> SupabaseConversationStore:
    return SupabaseConversationStore(
        url="https://project.supabase.co/",
        api_key="service-key",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_supabase_store_inserts_row_into_messages_table() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201)

    await _supabase_store(handler).append_turn("U1", "user", "hi")

    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://project.supabase.co/rest/v1/messages"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["Prefer"] == "return=minimal"
    assert json.loads(request.content) == {
        "user_id": "U1",
        "role": "user",
        "content": "hi",
    }


@pytest.mark.asyncio
async def test_supabase_store_selects_by_user_ordered_by_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["user_id"] == "eq.U1"
        assert request.url.params["order"] == "id.asc"
        assert request.url.params["select"] == "role,content"
        return httpx.Response(
            200,
            json=[
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello!"},
            ],
        )

    turns = await _supabase_store(handler).list_turns("U1")

    assert turns == (
        ConversationTurn(role="user", content="hi"),
        ConversationTurn(role="assistant", content="hello!"),
    )


@pytest.mark.asyncio
async def test_supabase_store_empty_result_is_not_an_error() -> None:
    turns = await _supabase_store(lambda _: httpx.Response(200, json=[])).list_turns(
        "U9"
    )

    assert turns == ()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "rows",
    [
        [{"role": "user", "content": "hi"}, "not a row"],
        [{"role": "user", "content": "hi"}, {"role": "assistant"}],
    ],
)
async def test_supabase_store_rejects_malformed_rows(rows: list) -> None:
    store = _supabase_store(lambda _: httpx.Response(200, json=rows))

    with pytest.raises(StorageError, match="Unexpected row shape"):
        await store.list_turns("U1")


@pytest.mark.asyncio
async def test_supabase_store_raises_storage_error_on_http_failure() -> None:
    store = _supabase_store(lambda _: httpx.Response(503, text="unavailable"))

    with pytest.raises(StorageError):
        await store.append_turn("U1", "user", "hi")
    with pytest.raises(StorageError):
        await store.list_turns("U1")


def test_build_conversation_store_selects_backend() -> None:
    memory = build_conversation_store(build_test_config(storage_backend="memory"))
    sqlite = build_conversation_store(
        build_test_config(storage_backend="sqlite", sqlite_path=":memory:")
    )
    supabase = build_conversation_store(
        build_test_config(
            storage_backend="supabase",
            supabase_url="https://project.supabase.co",
            supabase_key="key",
        )
    )

    assert isinstance(memory, InMemoryConversationStore)
    assert isinstance(sqlite, SqliteConversationStore)
    assert isinstance(supabase, SupabaseConversationStore)


def test_build_conversation_store_requires_supabase_credentials() -> None:
    with pytest.raises(ConfigurationError):
        build_conversation_store(build_test_config(storage_backend="supabase"))
