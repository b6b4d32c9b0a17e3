from __future__ import annotations

import json

import httpx
import pytest
import pytest_asyncio
import respx

from gym_booking.core import Settings
from gym_booking.db.store import DocumentChange, Transaction, TransactionConflict
from gym_booking.db.supabase import SupabaseDocumentStore, SupabaseError

BASE = "https://project.supabase.co/rest/v1"


@pytest_asyncio.fixture
async def supabase_store():
    settings = Settings(
        bot_token="test-token",
        storage_backend="supabase",
        supabase_url="https://project.supabase.co",
        supabase_service_key="service-key",
    )
    store = SupabaseDocumentStore(settings)
    yield store
    await store.close()


@pytest.mark.asyncio
@respx.mock
async def test_get_existing_document(supabase_store):
    route = respx.get(f"{BASE}/documents").respond(
        200, json=[{"id": "s1", "data": {"booking_count": 2}, "version": 4}]
    )

    snapshot = await supabase_store.get("sessions", "s1")

    assert snapshot.data == {"booking_count": 2}
    assert snapshot.version == 4
    request = route.calls.last.request
    assert request.url.params["collection"] == "eq.sessions"
    assert request.url.params["id"] == "eq.s1"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["Authorization"] == "Bearer service-key"


@pytest.mark.asyncio
@respx.mock
async def test_get_missing_document(supabase_store):
    respx.get(f"{BASE}/documents").respond(200, json=[])

    snapshot = await supabase_store.get("sessions", "nope")

    assert snapshot.exists is False
    assert snapshot.version == 0


@pytest.mark.asyncio
@respx.mock
async def test_http_errors_raise_supabase_error(supabase_store):
    respx.get(f"{BASE}/documents").respond(500, text="boom")

    with pytest.raises(SupabaseError) as exc_info:
        await supabase_store.get("sessions", "s1")
    assert exc_info.value.status_code == 500
    assert exc_info.value.detail == "boom"


@pytest.mark.asyncio
@respx.mock
async def test_create_if_absent(supabase_store):
    route = respx.post(f"{BASE}/documents").mock(
        side_effect=[
            httpx.Response(201, json=[{"collection": "sessions", "id": "s1"}]),
            httpx.Response(201, json=[]),
        ]
    )
    received: list[DocumentChange] = []

    async def listener(change: DocumentChange) -> None:
        received.append(change)

    supabase_store.changes.subscribe("sessions", listener)

    assert await supabase_store.create("sessions", "s1", {"booking_count": 0}) is True
    assert await supabase_store.create("sessions", "s1", {"booking_count": 0}) is False
    await supabase_store.changes.drain()

    request = route.calls[0].request
    assert "resolution=ignore-duplicates" in request.headers["Prefer"]
    assert json.loads(request.content) == {
        "collection": "sessions",
        "id": "s1",
        "data": {"booking_count": 0},
        "version": 1,
    }
    assert len(received) == 1


@pytest.mark.asyncio
@respx.mock
async def test_query_translates_filters(supabase_store):
    route = respx.get(f"{BASE}/documents").respond(
        200,
        json=[{"id": "n1", "data": {"user_id": "tg_1"}, "version": 1}],
    )

    results = await supabase_store.query(
        "notifications",
        [("user_id", "in", ["tg_1", "all"]), ("read", "==", False), ("date", ">=", "2024-01-01")],
        order_by="created_at",
        descending=True,
        limit=20,
    )

    assert [s.id for s in results] == ["n1"]
    params = route.calls.last.request.url.params
    assert params["collection"] == "eq.notifications"
    assert params["data->>user_id"] == "in.(tg_1,all)"
    assert params["data->>read"] == "eq.false"
    assert params["data->>date"] == "gte.2024-01-01"
    assert params["order"] == "data->>created_at.desc"
    assert params["limit"] == "20"


@pytest.mark.asyncio
@respx.mock
async def test_transaction_commit_sends_reads_and_writes(supabase_store):
    respx.get(f"{BASE}/documents").respond(
        200, json=[{"id": "s1", "data": {"booking_count": 1}, "version": 3}]
    )
    rpc = respx.post(f"{BASE}/rpc/commit_documents").respond(
        200,
        json={
            "committed": True,
            "changes": [
                {
                    "collection": "sessions",
                    "id": "s1",
                    "before": {"booking_count": 1},
                    "after": {"booking_count": 2},
                }
            ],
        },
    )
    received: list[DocumentChange] = []

    async def listener(change: DocumentChange) -> None:
        received.append(change)

    supabase_store.changes.subscribe("sessions", listener)

    tx = Transaction(supabase_store)
    snapshot = await tx.get("sessions", "s1")
    tx.update("sessions", "s1", {"booking_count": snapshot.data["booking_count"] + 1})
    await tx.commit()
    await supabase_store.changes.drain()

    assert json.loads(rpc.calls.last.request.content) == {
        "reads": [{"collection": "sessions", "id": "s1", "version": 3}],
        "writes": [{"collection": "sessions", "id": "s1", "kind": "update", "data": {"booking_count": 2}}],
    }
    assert [(c.before, c.after) for c in received] == [({"booking_count": 1}, {"booking_count": 2})]


@pytest.mark.asyncio
@respx.mock
async def test_rejected_commit_is_a_conflict(supabase_store):
    respx.post(f"{BASE}/rpc/commit_documents").respond(200, json={"committed": False})

    with pytest.raises(TransactionConflict):
        await supabase_store.set("sessions", "s1", {"booking_count": 0})


def test_requires_credentials():
    with pytest.raises(SupabaseError):
        SupabaseDocumentStore(Settings(bot_token="test-token"))
