from __future__ import annotations

import json
from typing import Any

import httpx

from gym_booking.core import Settings, get_settings
from gym_booking.db.store import (
    DocKey,
    DocumentChange,
    DocumentSnapshot,
    DocumentStore,
    Filter,
    StoreError,
    TransactionConflict,
    WriteOp,
)

_FILTER_OPERATORS = {
    "==": "eq",
    "!=": "neq",
    ">=": "gte",
    "<=": "lte",
    ">": "gt",
    "<": "lt",
    "in": "in",
}


class SupabaseError(StoreError):
    pass


class SupabaseDocumentStore(DocumentStore):
    """
    Async Supabase REST (PostgREST) document store.

    Expected Supabase schema (see supabase/migrations):
    - table `documents` with columns:
      collection (text), id (text), data (jsonb), version (bigint), updated_at
      primary key (collection, id)
    - function `commit_documents(reads jsonb, writes jsonb) returns jsonb`
      which checks read versions and applies all writes in one transaction.

    Service role key is used, so RLS is bypassed; access is restricted in code.
    """

    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        super().__init__()
        self._settings = settings or get_settings()
        if self._settings.supabase_url is None or not self._settings.supabase_service_key:
            raise SupabaseError("Supabase backend requires SUPABASE_URL and SUPABASE_SERVICE_KEY")
        base_url = str(self._settings.supabase_url).rstrip("/")
        self._rest = httpx.AsyncClient(
            base_url=f"{base_url}/rest/v1",
            headers={
                "apikey": self._settings.supabase_service_key,
                "Authorization": f"Bearer {self._settings.supabase_service_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=10.0,
            transport=transport,
        )

    async def close(self) -> None:
        await self._rest.aclose()

    def _raise_for_status(self, response: httpx.Response, message: str) -> None:
        if response.status_code >= 400:
            raise SupabaseError(
                message,
                status_code=response.status_code,
                detail=response.text,
            )

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        response = await self._rest.get(
            "/documents",
            params={
                "collection": f"eq.{collection}",
                "id": f"eq.{doc_id}",
                "select": "id,data,version",
                "limit": 1,
            },
        )
        self._raise_for_status(response, f"Supabase REST GET failed for '{collection}/{doc_id}'")
        items: list[dict[str, Any]] = response.json()
        if not items:
            return DocumentSnapshot(collection, doc_id, None, 0)
        row = items[0]
        return DocumentSnapshot(collection, doc_id, row["data"], int(row["version"]))

    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
        response = await self._rest.post(
            "/documents",
            json={"collection": collection, "id": doc_id, "data": data, "version": 1},
            headers={"Prefer": "resolution=ignore-duplicates,return=representation"},
        )
        self._raise_for_status(response, f"Supabase REST INSERT failed for '{collection}'")
        # An ignored duplicate comes back as an empty representation
        items: list[dict[str, Any]] = response.json()
        if not items:
            return False
        self.changes.publish([DocumentChange(collection, doc_id, None, data)])
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
        params: list[tuple[str, str | int]] = [
            ("collection", f"eq.{collection}"),
            ("select", "id,data,version"),
        ]
        for name, op, value in filters or []:
            params.append((f"data->>{name}", _format_filter(op, value)))
        if order_by is not None:
            params.append(("order", f"data->>{order_by}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", limit))

        response = await self._rest.get("/documents", params=params)
        self._raise_for_status(response, f"Supabase REST GET failed for '{collection}'")
        items: list[dict[str, Any]] = response.json()
        return [
            DocumentSnapshot(collection, item["id"], item["data"], int(item["version"]))
            for item in items
        ]

    async def _commit(self, reads: dict[DocKey, int], writes: list[WriteOp]) -> list[DocumentChange]:
        payload = {
            "reads": [
                {"collection": collection, "id": doc_id, "version": version}
                for (collection, doc_id), version in reads.items()
            ],
            "writes": [
                {"collection": w.collection, "id": w.id, "kind": w.kind, "data": w.data}
                for w in writes
            ],
        }
        response = await self._rest.post("/rpc/commit_documents", json=payload)
        self._raise_for_status(response, "Supabase commit_documents RPC failed")

        result: dict[str, Any] = response.json()
        if not result.get("committed"):
            raise TransactionConflict("Documents changed during transaction", status_code=409)
        return [
            DocumentChange(
                collection=change["collection"],
                id=change["id"],
                before=change.get("before"),
                after=change.get("after"),
            )
            for change in result.get("changes", [])
        ]


def _format_filter(op: str, value: Any) -> str:
    operator = _FILTER_OPERATORS.get(op)
    if operator is None:
        raise SupabaseError(f"Unsupported filter operator: {op}")
    if op == "in":
        return f"in.({','.join(_format_value(v) for v in value)})"
    return f"{operator}.{_format_value(value)}"


def _format_value(value: Any) -> str:
    # ->> extracts text, so compare against the JSON text form
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    return json.dumps(value)
