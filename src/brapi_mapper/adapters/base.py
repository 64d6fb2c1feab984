"""Record store protocol definition.

Defines the ``RecordStore`` Protocol that all storage adapters must
implement, and the ``Record`` model the engine reads backend entities
through.  All methods are ``async def``.

Filters map a backend field to a value or a list of values.  A list means
"any of" (SQL ``IN``); every filter must match (AND).  Values compare
loosely: ``7`` matches ``"7"``.

Usage:
    from brapi_mapper.adapters.base import RecordStore

    async def do_work(store: RecordStore) -> None:
        found = await store.query("germplasm", {"name": ["IR64", "IR8"]})
        records = await store.load_many("germplasm", found.ids)
        await store.close()
"""

from typing import Any, Protocol

from pydantic import BaseModel, Field, field_validator

# Filter key that always addresses the record identifier
ID_FIELD = "id"


class Record(BaseModel):
    """A backend entity as seen by the mapping engine.

    ``values`` holds scalar fields and, for reference fields, the list of
    referenced record identifiers.  ``references`` names the reference
    fields and the record kind each one points to.

    Example:
        >>> record = Record(kind="germplasm", id=1, values={"name": "IR64"})
        >>> record.to_data()
        {'id': '1', 'name': 'IR64'}
    """

    kind: str
    id: str
    bundle: str | None = None
    values: dict[str, Any] = Field(default_factory=dict)
    references: dict[str, str] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    def has_field(self, field: str) -> bool:
        return field == ID_FIELD or field in self.values or field in self.references

    def get(self, field: str) -> Any:
        """Return a field value (the identifier for ``id``)."""
        if field == ID_FIELD:
            return self.id
        return self.values.get(field)

    def is_reference(self, field: str) -> bool:
        return field in self.references

    def reference_ids(self, field: str) -> list[str]:
        """Return identifiers held by a reference field."""
        value = self.values.get(field)
        if value is None:
            return []
        if not isinstance(value, list):
            value = [value]
        return [str(v) for v in value if v is not None and v != ""]

    def to_data(self) -> dict[str, Any]:
        """Plain-data form used by custom value expressions.

        Scalar fields are kept as they are; reference fields become lists
        of ``{"target_id": id}`` items.
        """
        data: dict[str, Any] = {ID_FIELD: self.id}
        for field, value in self.values.items():
            if field in self.references:
                data[field] = [{"target_id": rid} for rid in self.reference_ids(field)]
            else:
                data[field] = value
        return data


class QueryResult(BaseModel):
    """Identifiers of matching records (one page when a range is given)."""

    ids: list[str] = Field(default_factory=list)
    total_count: int = 0


def loose_equals(left: Any, right: Any) -> bool:
    """Compare two scalar values the way string-typed storage does."""
    if left is None or right is None:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return str(left).lower() == str(right).lower()
    return str(left) == str(right)


class RecordStore(Protocol):
    """Record store interface that all adapters must implement.

    The storage engine exclusively owns persistence; the engine only reads
    and writes through these operations.
    """

    async def query(
        self,
        kind: str,
        filters: dict[str, Any],
        bundle: str | None = None,
        range: tuple[int, int] | None = None,
    ) -> QueryResult:
        """Find records matching *filters*.

        Args:
            kind: Record kind (table, entity type).
            filters: Dict of field=value or field=[values] filters.
            bundle: Optional bundle/subtype restriction.
            range: Optional ``(offset, length)`` window.  ``total_count`` is
                always the number of matches before the window.

        Returns:
            ``QueryResult`` with matching identifiers in stable order.
        """
        ...

    async def load_many(self, kind: str, ids: list[str]) -> list[Record]:
        """Load records by identifier, in the order of *ids*.

        Unknown identifiers are skipped.
        """
        ...

    async def load_references(self, record: Record, field: str) -> list[Record]:
        """Load the records referenced by *field* of *record*."""
        ...

    async def create(
        self, kind: str, fields: dict[str, Any], bundle: str | None = None
    ) -> Record:
        """Create a record and return it.

        Raises:
            ObjectAlreadyExistsError: If the identifier is taken.
            StorageError: If the record cannot be stored.
        """
        ...

    async def update(self, kind: str, record_id: str, fields: dict[str, Any]) -> Record:
        """Update fields of one record and return it.

        Raises:
            NotFoundError: If no such record exists.
        """
        ...

    async def delete(self, kind: str, ids: list[str]) -> bool:
        """Delete records; True when at least one record was removed."""
        ...

    async def close(self) -> None:
        """Release connections and other resources."""
        ...
