"""In-memory record store.

Provides ``InMemoryRecordStore``, a dict-backed implementation of the
``RecordStore`` protocol used for tests, demos, and the CLI.  Records can
be loaded from a JSON fixture file::

    {
        "germplasm": [
            {"id": 1, "bundle": "accession", "name": "IR64", "species": [3]}
        ]
    }

Writes are serialized by an ``asyncio.Lock``.

Usage:
    from brapi_mapper.adapters.memory import InMemoryRecordStore

    store = InMemoryRecordStore.from_fixtures(
        "fixtures.json",
        references={"germplasm": {"species": "taxon"}},
    )
    found = await store.query("germplasm", {"name": "IR64"})
"""

import asyncio
import json
from pathlib import Path
from typing import Any

from brapi_mapper.adapters.base import ID_FIELD, QueryResult, Record, loose_equals
from brapi_mapper.errors import NotFoundError, ObjectAlreadyExistsError


def _value_matches(actual: Any, expected: Any) -> bool:
    """Match one stored value against one filter value (IN semantics)."""
    candidates = expected if isinstance(expected, list) else [expected]
    values = actual if isinstance(actual, list) else [actual]
    return any(loose_equals(a, c) for a in values for c in candidates)


class InMemoryRecordStore:
    """Dict-backed implementation of the ``RecordStore`` protocol.

    Args:
        records: Initial records.
        references: Reference fields per kind (``{kind: {field: target_kind}}``)
            applied to records created through ``create()`` and fixtures.

    Example:
        store = InMemoryRecordStore([Record(kind="germplasm", id="1", values={"name": "IR64"})])
        result = await store.query("germplasm", {"name": "IR64"})
        result.ids  # ['1']
    """

    def __init__(
        self,
        records: list[Record] | None = None,
        references: dict[str, dict[str, str]] | None = None,
    ) -> None:
        self._records: dict[str, dict[str, Record]] = {}
        self._references: dict[str, dict[str, str]] = references or {}
        self._lock: asyncio.Lock = asyncio.Lock()
        for record in records or []:
            self.add(record)

    @classmethod
    def from_fixtures(
        cls,
        path: str | Path,
        references: dict[str, dict[str, str]] | None = None,
    ) -> "InMemoryRecordStore":
        """Create a store from a JSON fixture file.

        Raises:
            FileNotFoundError: If the fixture file doesn't exist.
            ValueError: If the fixture file is not a JSON object of lists.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Fixture file not found: {path}")
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Fixture file must contain a JSON object: {path}")

        store = cls(references=references)
        for kind, rows in data.items():
            for row in rows:
                store.add(store._build(kind, dict(row)))
        return store

    def _build(self, kind: str, fields: dict[str, Any], bundle: str | None = None) -> Record:
        record_id = fields.pop(ID_FIELD, None)
        if record_id is None:
            record_id = self._next_id(kind)
        bundle = fields.pop("bundle", bundle)
        return Record(
            kind=kind,
            id=record_id,
            bundle=bundle,
            values=fields,
            references=dict(self._references.get(kind, {})),
        )

    def _next_id(self, kind: str) -> str:
        numeric = [int(rid) for rid in self._records.get(kind, {}) if rid.isdigit()]
        return str(max(numeric, default=0) + 1)

    def add(self, record: Record) -> None:
        """Insert or replace a record without locking (setup helper)."""
        self._records.setdefault(record.kind, {})[record.id] = record

    # ------------------------------------------------------------------
    # Query Methods
    # ------------------------------------------------------------------

    def _matches(self, record: Record, filters: dict[str, Any], bundle: str | None) -> bool:
        if bundle is not None and record.bundle != bundle:
            return False
        for field, expected in filters.items():
            if not record.has_field(field):
                return False
            if field in record.references:
                actual: Any = record.reference_ids(field)
            else:
                actual = record.get(field)
            if not _value_matches(actual, expected):
                return False
        return True

    async def query(
        self,
        kind: str,
        filters: dict[str, Any],
        bundle: str | None = None,
        range: tuple[int, int] | None = None,
    ) -> QueryResult:
        """Find matching records in insertion order."""
        ids = [
            rid
            for rid, record in self._records.get(kind, {}).items()
            if self._matches(record, filters, bundle)
        ]
        total_count = len(ids)
        if range is not None:
            offset, length = range
            ids = ids[offset:offset + length]
        return QueryResult(ids=ids, total_count=total_count)

    async def load_many(self, kind: str, ids: list[str]) -> list[Record]:
        """Load copies of the requested records."""
        records = self._records.get(kind, {})
        return [records[str(rid)].model_copy(deep=True) for rid in ids if str(rid) in records]

    async def load_references(self, record: Record, field: str) -> list[Record]:
        """Load the records referenced by one field of *record*."""
        target_kind = record.references.get(field)
        if target_kind is None:
            return []
        return await self.load_many(target_kind, record.reference_ids(field))

    # ------------------------------------------------------------------
    # Write Methods
    # ------------------------------------------------------------------

    async def create(
        self, kind: str, fields: dict[str, Any], bundle: str | None = None
    ) -> Record:
        """Create a record, assigning the next numeric id when none is given."""
        async with self._lock:
            record = self._build(kind, dict(fields), bundle)
            if record.id in self._records.get(kind, {}):
                raise ObjectAlreadyExistsError(
                    f"A '{kind}' record with identifier '{record.id}' already exists."
                )
            self.add(record)
            return record.model_copy(deep=True)

    async def update(self, kind: str, record_id: str, fields: dict[str, Any]) -> Record:
        """Merge *fields* into an existing record."""
        async with self._lock:
            record = self._records.get(kind, {}).get(str(record_id))
            if record is None:
                raise NotFoundError(f"No '{kind}' record with identifier '{record_id}'.")
            updated = {k: v for k, v in fields.items() if k != ID_FIELD}
            record.values.update(updated)
            return record.model_copy(deep=True)

    async def delete(self, kind: str, ids: list[str]) -> bool:
        """Remove records; unknown identifiers are ignored."""
        async with self._lock:
            records = self._records.get(kind, {})
            removed = [records.pop(str(rid)) for rid in ids if str(rid) in records]
            return bool(removed)

    async def close(self) -> None:
        """Nothing to release."""
        return None
