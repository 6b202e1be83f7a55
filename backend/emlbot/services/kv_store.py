"""
Key-value store backends.

Both coordination records (lock/processing/done) and extracted content live
in a plain get/set/delete store. No backend offers compare-and-swap and none
promises durability: callers must treat every read as possibly stale and a
missing key as a normal outcome.

Backends:
  InMemoryStore    — process-local dict; tests and single-process dev.
  SupabaseKVStore  — rows in a Supabase table, one namespace per store.

Supabase table layout
---------------------
  create table kv_entries (
    namespace  text not null,
    key        text not null,
    value      jsonb,
    updated_at timestamptz not null default now(),
    primary key (namespace, key)
  );
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from supabase import Client

from emlbot.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

CONTENT_NAMESPACE = "content"
COORDINATION_NAMESPACE = "coord"
DIAGNOSTICS_NAMESPACE = "diag"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Dict-backed store. Values are kept as-is (no serialization)."""

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._items[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


class SupabaseKVStore:
    """
    Supabase-backed store scoped to a single namespace.

    Every failure is re-raised as StoreUnavailableError so the pipeline can
    distinguish "store is down" from "key is absent" (which returns None).
    """

    def __init__(self, client: Client, namespace: str, table: str = "kv_entries") -> None:
        self._client = client
        self._namespace = namespace
        self._table = table

    def get(self, key: str) -> Optional[Any]:
        try:
            result = (
                self._client.table(self._table)
                .select("value")
                .eq("namespace", self._namespace)
                .eq("key", key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Failed to read {self._namespace}/{key}: {e}") from e

        if not result.data:
            return None
        return result.data[0].get("value")

    def set(self, key: str, value: Any) -> None:
        row = {
            "namespace": self._namespace,
            "key": key,
            "value": value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._client.table(self._table).upsert(row, on_conflict="namespace,key").execute()
        except Exception as e:
            raise StoreUnavailableError(f"Failed to write {self._namespace}/{key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            (
                self._client.table(self._table)
                .delete()
                .eq("namespace", self._namespace)
                .eq("key", key)
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Failed to delete {self._namespace}/{key}: {e}") from e
