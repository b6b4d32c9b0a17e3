from __future__ import annotations

from gym_booking.core import get_settings
from gym_booking.db.store import DocumentStore, InMemoryDocumentStore

_store: DocumentStore | None = None


def get_store() -> DocumentStore:
    """
    Lazy singleton for the configured document store.

    STORAGE_BACKEND=supabase uses the Supabase REST store,
    anything else keeps documents in process memory.
    """

    global _store
    if _store is None:
        settings = get_settings()
        if settings.storage_backend == "supabase":
            from gym_booking.db.supabase import SupabaseDocumentStore

            _store = SupabaseDocumentStore(settings)
        else:
            _store = InMemoryDocumentStore()
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None


__all__ = ["DocumentStore", "get_store", "close_store"]
