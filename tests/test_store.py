from __future__ import annotations

import asyncio

import pytest

from gym_booking.db.store import (
    DocumentChange,
    StoreError,
    Transaction,
    TransactionAborted,
    TransactionConflict,
    run_transaction,
)


@pytest.mark.asyncio
async def test_create_only_if_absent(store):
    assert await store.create("things", "a", {"n": 1}) is True
    assert await store.create("things", "a", {"n": 2}) is False

    snapshot = await store.get("things", "a")
    assert snapshot.data == {"n": 1}
    assert snapshot.version == 1


@pytest.mark.asyncio
async def test_missing_document_has_version_zero(store):
    snapshot = await store.get("things", "nope")
    assert snapshot.exists is False
    assert snapshot.version == 0


@pytest.mark.asyncio
async def test_writes_bump_version_and_merge(store):
    await store.set("things", "a", {"n": 1, "keep": True})
    await store.update("things", "a", {"n": 2})

    snapshot = await store.get("things", "a")
    assert snapshot.data == {"n": 2, "keep": True}
    assert snapshot.version == 2


@pytest.mark.asyncio
async def test_update_missing_document_fails(store):
    with pytest.raises(StoreError):
        await store.update("things", "ghost", {"n": 1})


@pytest.mark.asyncio
async def test_returned_data_is_a_copy(store):
    await store.set("things", "a", {"items": [1]})
    snapshot = await store.get("things", "a")
    snapshot.data["items"].append(2)

    assert (await store.get("things", "a")).data == {"items": [1]}


@pytest.mark.asyncio
async def test_query_filters_order_and_limit(store):
    await store.set("things", "a", {"kind": "x", "rank": 3})
    await store.set("things", "b", {"kind": "x", "rank": 1})
    await store.set("things", "c", {"kind": "y", "rank": 2})
    await store.set("things", "d", {"kind": "x"})

    ranked = await store.query("things", [("kind", "==", "x"), ("rank", ">=", 1)], order_by="rank")
    assert [s.id for s in ranked] == ["b", "a"]

    newest = await store.query("things", [("kind", "in", ["x", "y"])], order_by="rank", descending=True, limit=2)
    # Missing values sort last ascending, so first when descending
    assert [s.id for s in newest] == ["d", "a"]


@pytest.mark.asyncio
async def test_transaction_conflicts_when_read_document_changes(store):
    await store.set("counters", "c", {"value": 0})

    tx = Transaction(store)
    snapshot = await tx.get("counters", "c")
    await store.update("counters", "c", {"value": 5})
    tx.update("counters", "c", {"value": snapshot.data["value"] + 1})

    with pytest.raises(TransactionConflict):
        await tx.commit()
    assert (await store.get("counters", "c")).data["value"] == 5


@pytest.mark.asyncio
async def test_transaction_conflicts_when_absent_document_appears(store):
    tx = Transaction(store)
    await tx.get("things", "new")
    await store.set("things", "new", {"n": 1})
    tx.set("things", "new", {"n": 2})

    with pytest.raises(TransactionConflict):
        await tx.commit()


@pytest.mark.asyncio
async def test_transaction_rejects_read_after_write(store):
    tx = Transaction(store)
    tx.set("things", "a", {"n": 1})
    with pytest.raises(StoreError):
        await tx.get("things", "a")


@pytest.mark.asyncio
async def test_commit_is_all_or_nothing(store):
    await store.set("things", "a", {"n": 1})

    tx = Transaction(store)
    await tx.get("things", "a")
    tx.update("things", "a", {"n": 2})
    tx.update("things", "missing", {"n": 2})

    with pytest.raises(StoreError):
        await tx.commit()
    assert (await store.get("things", "a")).data == {"n": 1}


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(store):
    await store.set("counters", "c", {"value": 0})

    async def increment(tx: Transaction) -> None:
        snapshot = await tx.get("counters", "c")
        tx.update("counters", "c", {"value": snapshot.data["value"] + 1})

    await asyncio.gather(*(run_transaction(store, increment, max_attempts=50) for _ in range(10)))

    assert (await store.get("counters", "c")).data["value"] == 10


@pytest.mark.asyncio
async def test_run_transaction_gives_up_when_nothing_changes(store, monkeypatch):
    await store.set("counters", "c", {"value": 0})
    attempts = 0

    async def rejected_commit(reads, writes):
        raise TransactionConflict("changed")

    async def increment(tx: Transaction) -> None:
        nonlocal attempts
        attempts += 1
        snapshot = await tx.get("counters", "c")
        tx.update("counters", "c", {"value": snapshot.data["value"] + 1})

    monkeypatch.setattr(store, "_commit", rejected_commit)

    with pytest.raises(TransactionAborted):
        await run_transaction(store, increment, max_attempts=3)
    assert attempts == 3


@pytest.mark.asyncio
async def test_conflicts_lost_to_landed_commits_do_not_use_up_attempts(store):
    await store.set("counters", "c", {"value": 0})
    attempts = 0

    async def beaten_five_times(tx: Transaction) -> None:
        nonlocal attempts
        attempts += 1
        snapshot = await tx.get("counters", "c")
        if attempts <= 5:
            await store.update("counters", "c", {"value": snapshot.data["value"] + 100})
        tx.update("counters", "c", {"value": -1})

    await run_transaction(store, beaten_five_times, max_attempts=2)

    assert attempts == 6
    assert (await store.get("counters", "c")).data["value"] == -1


@pytest.mark.asyncio
async def test_run_transaction_stops_at_timeout(store):
    await store.set("counters", "c", {"value": 0})

    async def always_beaten(tx: Transaction) -> None:
        snapshot = await tx.get("counters", "c")
        await store.update("counters", "c", {"value": snapshot.data["value"] + 1})
        tx.update("counters", "c", {"value": -1})

    with pytest.raises(TransactionAborted):
        await run_transaction(store, always_beaten, max_attempts=3, timeout=0.05)
    assert (await store.get("counters", "c")).data["value"] > 0


@pytest.mark.asyncio
async def test_errors_inside_transaction_write_nothing(store):
    async def failing(tx: Transaction) -> None:
        await tx.get("things", "a")
        tx.set("things", "a", {"n": 1})
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await run_transaction(store, failing)
    assert (await store.get("things", "a")).exists is False


@pytest.mark.asyncio
async def test_change_feed_delivers_committed_changes(store):
    received: list[DocumentChange] = []

    async def listener(change: DocumentChange) -> None:
        received.append(change)

    unsubscribe = store.changes.subscribe("things", listener)
    await store.create("things", "a", {"n": 1})
    await store.update("things", "a", {"n": 2})
    await store.set("other", "x", {"n": 1})
    await store.changes.drain()

    assert [(c.before, c.after) for c in received] == [(None, {"n": 1}), ({"n": 1}, {"n": 2})]
    assert received[0].created is True

    unsubscribe()
    await store.set("things", "b", {"n": 1})
    await store.changes.drain()
    assert len(received) == 2


@pytest.mark.asyncio
async def test_failing_listener_does_not_affect_writer(store, caplog):
    async def broken(change: DocumentChange) -> None:
        raise RuntimeError("listener exploded")

    store.changes.subscribe("things", broken)
    await store.set("things", "a", {"n": 1})
    await store.changes.drain()

    assert (await store.get("things", "a")).data == {"n": 1}
    assert "listener" in caplog.text.lower()


@pytest.mark.asyncio
async def test_duplicate_create_publishes_nothing(store):
    received: list[DocumentChange] = []

    async def listener(change: DocumentChange) -> None:
        received.append(change)

    store.changes.subscribe("things", listener)
    await store.create("things", "a", {"n": 1})
    await store.create("things", "a", {"n": 1})
    await store.changes.drain()

    assert len(received) == 1
