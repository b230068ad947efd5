"""
Persistent store abstraction.
Keyed CRUD with compare-and-swap updates and time-filtered range queries.
Records are plain dicts carrying `id` and `version`.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from trust_safety.lib.errors import ConcurrencyConflict, NotFoundError

Record = Dict[str, Any]


class PersistentStore(ABC):
    """Storage collaborator consumed by every service."""

    @abstractmethod
    async def insert(self, table: str, record: Record) -> Record:
        """Insert a new record (version becomes 1). Raises ConcurrencyConflict if the id exists."""

    @abstractmethod
    async def insert_unique(
        self, table: str, record: Record, unique_fields: Dict[str, Any]
    ) -> Tuple[Record, bool]:
        """
        Atomically insert unless a record matching every `unique_fields` value exists.
        Returns (record, created); when not created the existing record is returned.
        """

    @abstractmethod
    async def get(self, table: str, record_id: Any) -> Optional[Record]:
        """Fetch by id, or None."""

    @abstractmethod
    async def update(
        self,
        table: str,
        record_id: Any,
        changes: Record,
        expected_version: Optional[int] = None,
    ) -> Record:
        """
        Apply `changes` and bump the version. With `expected_version` the write only
        lands if the stored version still matches, otherwise ConcurrencyConflict.
        """

    @abstractmethod
    async def delete(self, table: str, record_id: Any) -> bool:
        """Remove a record. Returns False when it did not exist."""

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        time_field: str = "created_at",
        order_desc: bool = True,
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Equality-filtered range query ordered by `time_field`."""


class InMemoryStore(PersistentStore):
    """
    Process-local store.
    A single asyncio lock makes each call atomic, which is what the CAS contract needs.
    """

    def __init__(self):
        self._tables: Dict[str, Dict[str, Record]] = {}
        self._lock = asyncio.Lock()

    def _table(self, table: str) -> Dict[str, Record]:
        return self._tables.setdefault(table, {})

    @staticmethod
    def _matches(record: Record, filters: Dict[str, Any]) -> bool:
        return all(record.get(key) == value for key, value in filters.items())

    async def insert(self, table: str, record: Record) -> Record:
        async with self._lock:
            return self._insert(table, record)

    def _insert(self, table: str, record: Record) -> Record:
        rows = self._table(table)
        key = str(record["id"])
        if key in rows:
            raise ConcurrencyConflict(f"{table}/{key} already exists")
        stored = copy.deepcopy(record)
        stored["version"] = 1
        rows[key] = stored
        return copy.deepcopy(stored)

    async def insert_unique(
        self, table: str, record: Record, unique_fields: Dict[str, Any]
    ) -> Tuple[Record, bool]:
        async with self._lock:
            for existing in self._table(table).values():
                if self._matches(existing, unique_fields):
                    return copy.deepcopy(existing), False
            return self._insert(table, record), True

    async def get(self, table: str, record_id: Any) -> Optional[Record]:
        async with self._lock:
            row = self._table(table).get(str(record_id))
            return copy.deepcopy(row) if row is not None else None

    async def update(
        self,
        table: str,
        record_id: Any,
        changes: Record,
        expected_version: Optional[int] = None,
    ) -> Record:
        async with self._lock:
            rows = self._table(table)
            key = str(record_id)
            if key not in rows:
                raise NotFoundError(f"{table}/{key} not found")
            row = rows[key]
            if expected_version is not None and row.get("version") != expected_version:
                raise ConcurrencyConflict(
                    f"{table}/{key} version {row.get('version')} != expected {expected_version}"
                )
            row.update(copy.deepcopy(changes))
            row["version"] = row.get("version", 0) + 1
            return copy.deepcopy(row)

    async def delete(self, table: str, record_id: Any) -> bool:
        async with self._lock:
            return self._table(table).pop(str(record_id), None) is not None

    async def query(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        time_field: str = "created_at",
        order_desc: bool = True,
        limit: Optional[int] = None,
    ) -> List[Record]:
        filters = filters or {}
        async with self._lock:
            rows = [r for r in self._table(table).values() if self._matches(r, filters)]

        if since is not None:
            rows = [r for r in rows if r.get(time_field) is not None and r[time_field] >= since]
        if until is not None:
            rows = [r for r in rows if r.get(time_field) is not None and r[time_field] <= until]

        rows.sort(key=lambda r: (r.get(time_field) is not None, r.get(time_field) or datetime.min),
                  reverse=order_desc)
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(r) for r in rows]
