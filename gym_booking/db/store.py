from __future__ import annotations

import asyncio
import copy
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DocKey = tuple[str, str]
FilterOp = Literal["==", "!=", ">=", "<=", ">", "<", "in"]
Filter = tuple[str, FilterOp, Any]


class StoreError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class TransactionConflict(StoreError):
    """A document read by the transaction changed before commit."""


class TransactionAborted(StoreError):
    """The transaction kept conflicting and ran out of attempts."""


@dataclass(frozen=True)
class DocumentSnapshot:
    collection: str
    id: str
    data: dict[str, Any] | None
    # 0 means the document does not exist
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class WriteOp:
    collection: str
    id: str
    kind: Literal["set", "update"]
    data: dict[str, Any]


@dataclass(frozen=True)
class DocumentChange:
    collection: str
    id: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None

    @property
    def created(self) -> bool:
        return self.before is None and self.after is not None


Listener = Callable[[DocumentChange], Awaitable[None]]


class ChangeFeed:
    """
    Publish/subscribe channel for committed document changes, keyed by collection.

    Listeners run on their own tasks after the write has committed; a failing
    listener is logged and never affects the writer.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, collection: str, listener: Listener) -> Callable[[], None]:
        self._listeners.setdefault(collection, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(collection, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def publish(self, changes: list[DocumentChange]) -> None:
        for change in changes:
            for listener in list(self._listeners.get(change.collection, [])):
                task = asyncio.create_task(self._deliver(listener, change))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def _deliver(self, listener: Listener, change: DocumentChange) -> None:
        try:
            await listener(change)
        except Exception:
            logger.exception(
                "Change listener %s failed for %s/%s",
                getattr(listener, "__qualname__", listener),
                change.collection,
                change.id,
            )

    async def drain(self) -> None:
        """Wait until every delivered change (including cascades) has been handled."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


class DocumentStore(ABC):
    """
    Minimal document database: JSON documents addressed by (collection, id),
    each carrying a version that every committed write bumps.
    """

    def __init__(self) -> None:
        self.changes = ChangeFeed()

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        ...

    @abstractmethod
    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
        """
        Create the document only if it does not exist yet.

        Returns False (and writes nothing) when the id is already taken.
        """

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: list[Filter] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        ...

    @abstractmethod
    async def _commit(self, reads: dict[DocKey, int], writes: list[WriteOp]) -> list[DocumentChange]:
        """
        Apply `writes` atomically if every version in `reads` is unchanged.

        Raises TransactionConflict otherwise.
        """

    async def close(self) -> None:
        return None

    async def commit(self, reads: dict[DocKey, int], writes: list[WriteOp]) -> None:
        changes = await self._commit(reads, writes)
        self.changes.publish(changes)

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self.commit({}, [WriteOp(collection, doc_id, "set", data)])

    async def update(self, collection: str, doc_id: str, patch: dict[str, Any]) -> None:
        await self.commit({}, [WriteOp(collection, doc_id, "update", patch)])

    async def update_many(self, collection: str, patches: dict[str, dict[str, Any]]) -> None:
        writes = [WriteOp(collection, doc_id, "update", patch) for doc_id, patch in patches.items()]
        if writes:
            await self.commit({}, writes)


class Transaction:
    """
    Optimistic read-modify-write unit.

    Reads record the version they observed; writes are buffered and only
    applied by the store on commit, together, and only if none of the
    observed versions changed in the meantime.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._reads: dict[DocKey, int] = {}
        self._writes: list[WriteOp] = []

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        if self._writes:
            raise StoreError("Transaction reads must happen before writes")
        snapshot = await self._store.get(collection, doc_id)
        self._reads[(collection, doc_id)] = snapshot.version
        return snapshot

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._writes.append(WriteOp(collection, doc_id, "set", data))

    def update(self, collection: str, doc_id: str, patch: dict[str, Any]) -> None:
        self._writes.append(WriteOp(collection, doc_id, "update", patch))

    @property
    def read_versions(self) -> dict[DocKey, int]:
        return dict(self._reads)

    async def commit(self) -> None:
        if not self._writes:
            return
        await self._store.commit(self._reads, self._writes)


def _backoff(attempt: int) -> float:
    return random.uniform(0, min(0.02, 0.001 * 2 ** min(attempt, 5)))


async def run_transaction(
    store: DocumentStore,
    func: Callable[[Transaction], Awaitable[T]],
    *,
    max_attempts: int = 5,
    timeout: float = 30.0,
) -> T:
    """
    Run `func` inside an optimistic transaction, retrying on conflicts.

    Every attempt starts from fresh reads. Exceptions raised by `func`
    propagate immediately and nothing is written.

    A conflict only counts against `max_attempts` while nobody is getting
    anywhere: when the retry reads newer versions than the attempt that
    lost, another commit landed and the count starts over. Such retries
    are bounded by `timeout` seconds instead.
    """

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    stalled = 0
    lost_reads: dict[DocKey, int] | None = None
    attempt = 0

    while True:
        attempt += 1
        transaction = Transaction(store)
        result = await func(transaction)
        if lost_reads is not None and transaction.read_versions != lost_reads:
            stalled = 0
        try:
            await transaction.commit()
        except TransactionConflict:
            stalled += 1
            if stalled >= max_attempts:
                raise TransactionAborted(
                    f"Transaction aborted after {stalled} conflicting attempts without progress"
                ) from None
            if loop.time() >= deadline:
                raise TransactionAborted(
                    f"Transaction aborted after {attempt} attempts in {timeout}s"
                ) from None
            logger.debug("Transaction conflict (attempt %s, stalled %s/%s), retrying", attempt, stalled, max_attempts)
            lost_reads = transaction.read_versions
            await asyncio.sleep(_backoff(attempt))
            continue
        return result


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local store used for local runs and tests.

    Commits are applied inside a single critical section, which gives the
    same all-or-nothing, check-versions-then-write behaviour as the
    database-side commit function.
    """

    def __init__(self) -> None:
        super().__init__()
        self._docs: dict[DocKey, tuple[int, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        # Yield to the loop the way a network round trip would
        await asyncio.sleep(0)
        stored = self._docs.get((collection, doc_id))
        if stored is None:
            return DocumentSnapshot(collection, doc_id, None, 0)
        version, data = stored
        return DocumentSnapshot(collection, doc_id, _copy(data), version)

    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
        async with self._lock:
            if (collection, doc_id) in self._docs:
                return False
            self._docs[(collection, doc_id)] = (1, _copy(data))
        self.changes.publish([DocumentChange(collection, doc_id, None, _copy(data))])
        return True

    async def query(
        self,
        collection: str,
        filters: list[Filter] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        results = [
            DocumentSnapshot(coll, doc_id, _copy(data), version)
            for (coll, doc_id), (version, data) in self._docs.items()
            if coll == collection and all(_matches(data, f) for f in filters or [])
        ]
        if order_by is not None:
            results.sort(key=lambda snap: _sort_key(snap.data.get(order_by)), reverse=descending)
        if limit is not None:
            results = results[:limit]
        return results

    async def _commit(self, reads: dict[DocKey, int], writes: list[WriteOp]) -> list[DocumentChange]:
        async with self._lock:
            for key, version in reads.items():
                current = self._docs.get(key)
                if (current[0] if current else 0) != version:
                    raise TransactionConflict(f"Document {key[0]}/{key[1]} changed during transaction")

            staged: dict[DocKey, tuple[int, dict[str, Any]]] = {}
            changes: list[DocumentChange] = []
            for write in writes:
                key = (write.collection, write.id)
                current = staged.get(key, self._docs.get(key))
                before = current[1] if current else None
                if write.kind == "update":
                    if before is None:
                        raise StoreError(
                            f"Cannot update missing document {write.collection}/{write.id}",
                            status_code=404,
                        )
                    after = {**before, **_copy(write.data)}
                else:
                    after = _copy(write.data)
                version = (current[0] if current else 0) + 1
                staged[key] = (version, after)
                changes.append(DocumentChange(write.collection, write.id, _copy(before), _copy(after)))

            self._docs.update(staged)
            return changes


def _copy(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if data is None:
        return None
    return copy.deepcopy(data)


def _sort_key(value: Any) -> tuple[bool, Any]:
    return (value is None, value if value is not None else "")


def _matches(data: dict[str, Any], condition: Filter) -> bool:
    name, op, expected = condition
    value = data.get(name)
    if op == "==":
        return value == expected
    if op == "!=":
        return value != expected
    if op == "in":
        return value in expected
    if value is None:
        return False
    if op == ">=":
        return value >= expected
    if op == "<=":
        return value <= expected
    if op == ">":
        return value > expected
    if op == "<":
        return value < expected
    raise StoreError(f"Unsupported filter operator: {op}")
