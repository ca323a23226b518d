"""
Content store abstraction over the hosted relational store.
- If Supabase is configured, records live in the `assessments` / `examinations` tables.
- Otherwise fall back to an in-memory store (process-local, not for production).

Records are plain dicts keyed by the persistence column names.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from exam_authoring.utils.errors import PersistenceError

logger = logging.getLogger(__name__)

_CACHED_STORE: Optional["ContentStore"] = None


class ContentStore(Protocol):
    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]: ...

    def get(self, table: str, item_id: str) -> Optional[Dict[str, Any]]: ...

    def list(
        self,
        table: str,
        *,
        status: Optional[str] = None,
        teacher_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]: ...

    def transition(
        self,
        table: str,
        item_id: str,
        *,
        expected_status: str,
        patch: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Conditional write: apply `patch` only if the row's status is still
        `expected_status`. Returns the updated row, or None when the condition
        did not hold (row missing or already moved on).
        """
        ...


class InMemoryContentStore:
    def __init__(self):
        self._lock = threading.Lock()
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        item_id = str(row.get("id") or "")
        if not item_id:
            raise PersistenceError("row id is required")
        with self._lock:
            rows = self.tables.setdefault(table, {})
            if item_id in rows:
                raise PersistenceError(f"duplicate id {item_id} in {table}")
            rows[item_id] = copy.deepcopy(row)
            return copy.deepcopy(rows[item_id])

    def get(self, table: str, item_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self.tables.get(table, {}).get(str(item_id))
            return copy.deepcopy(row) if row is not None else None

    def list(
        self,
        table: str,
        *,
        status: Optional[str] = None,
        teacher_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [copy.deepcopy(r) for r in self.tables.get(table, {}).values()]
        if status is not None:
            rows = [r for r in rows if r.get("status") == status]
        if teacher_id is not None:
            rows = [r for r in rows if r.get("teacher_id") == teacher_id]
        rows.sort(key=lambda r: str(r.get("created_at") or ""), reverse=True)
        return rows[: max(0, int(limit))]

    def transition(
        self,
        table: str,
        item_id: str,
        *,
        expected_status: str,
        patch: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self.tables.get(table, {}).get(str(item_id))
            if row is None or row.get("status") != expected_status:
                return None
            row.update(copy.deepcopy(patch))
            return copy.deepcopy(row)


class SupabaseContentStore:
    def __init__(self, client: Any = None):
        if client is None:
            from exam_authoring.utils.supabase_client import get_supabase_client

            client = get_supabase_client(service_role=True)
        self.client = client

    def _table(self, name: str):
        return self.client.table(name)

    @staticmethod
    def _rows(resp: Any) -> List[Dict[str, Any]]:
        rows = getattr(resp, "data", None)
        if not isinstance(rows, list):
            return []
        return [r for r in rows if isinstance(r, dict)]

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self._table(table).insert(row).execute()
        except Exception as e:
            logger.error("Insert into %s failed: %s", table, e)
            raise PersistenceError(f"Failed to create record in {table}") from e
        rows = self._rows(resp)
        return rows[0] if rows else dict(row)

    def get(self, table: str, item_id: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self._table(table).select("*").eq("id", str(item_id)).limit(1).execute()
        except Exception as e:
            logger.error("Select from %s failed: %s", table, e)
            raise PersistenceError(f"Failed to read record from {table}") from e
        rows = self._rows(resp)
        return rows[0] if rows else None

    def list(
        self,
        table: str,
        *,
        status: Optional[str] = None,
        teacher_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        q = self._table(table).select("*")
        if status is not None:
            q = q.eq("status", status)
        if teacher_id is not None:
            q = q.eq("teacher_id", teacher_id)
        q = q.order("created_at", desc=True).limit(max(1, min(int(limit), 500)))
        try:
            resp = q.execute()
        except Exception as e:
            logger.error("List from %s failed: %s", table, e)
            raise PersistenceError(f"Failed to list records from {table}") from e
        return self._rows(resp)

    def transition(
        self,
        table: str,
        item_id: str,
        *,
        expected_status: str,
        patch: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        # The status filter makes the update a compare-and-set at the database:
        # of two concurrent deciders only the first matches a row.
        try:
            resp = (
                self._table(table)
                .update(patch)
                .eq("id", str(item_id))
                .eq("status", expected_status)
                .execute()
            )
        except Exception as e:
            logger.error("Conditional update on %s failed: %s", table, e)
            raise PersistenceError(f"Failed to update record in {table}") from e
        rows = self._rows(resp)
        return rows[0] if rows else None


def get_content_store() -> ContentStore:
    """Process-wide store: Supabase when configured, in-memory otherwise."""
    global _CACHED_STORE
    if _CACHED_STORE is not None:
        return _CACHED_STORE
    from exam_authoring.utils.supabase_client import supabase_configured

    if supabase_configured():
        _CACHED_STORE = SupabaseContentStore()
    else:
        logger.warning("Supabase not configured; using in-memory content store (not for production)")
        _CACHED_STORE = InMemoryContentStore()
    return _CACHED_STORE


def reset_content_store() -> None:
    global _CACHED_STORE
    _CACHED_STORE = None
