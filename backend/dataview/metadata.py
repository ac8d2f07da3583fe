"""Linked-table metadata cache and display field selection."""

import asyncio
import logging
from dataclasses import dataclass

from dataview.fields import TEXT_LIKE_TYPES, Field, Table
from dataview.store import RecordStore, StoreError


logger = logging.getLogger(__name__)

# Metadata tables
TABLES_TABLE = "tables"
FIELDS_TABLE = "table_fields"

TABLE_COLUMNS = ["id", "name", "physical_name", "primary_field_name"]
FIELD_COLUMNS = ["id", "table_id", "name", "type", "required", "options", "position"]

# Columns every physical table carries; never used as a display label
SYSTEM_FIELD_NAMES: set[str] = {"id", "created_at", "updated_at", "created_by", "updated_by"}


@dataclass
class LinkedTableMetadata:
    table: Table
    fields: list[Field]


async def fetch_table(store: RecordStore, table_id: str) -> Table | None:
    rows = await store.select(TABLES_TABLE, TABLE_COLUMNS, eq={"id": table_id}, limit=1)
    return Table.from_row(rows[0]) if rows else None


async def fetch_fields(store: RecordStore, table_id: str) -> list[Field]:
    rows = await store.select(
        FIELDS_TABLE, FIELD_COLUMNS, eq={"table_id": table_id}, order_by="position"
    )
    return [Field.from_row(row) for row in rows]


async def fetch_field(store: RecordStore, field_id: str) -> Field | None:
    rows = await store.select(FIELDS_TABLE, FIELD_COLUMNS, eq={"id": field_id}, limit=1)
    return Field.from_row(rows[0]) if rows else None


async def fetch_field_by_name(store: RecordStore, table_id: str, name: str) -> Field | None:
    rows = await store.select(
        FIELDS_TABLE, FIELD_COLUMNS, eq={"table_id": table_id, "name": name}, limit=1
    )
    return Field.from_row(rows[0]) if rows else None


class LinkedTableMetadataCache:
    """Per-target-table metadata, fetched once and shared by all callers.

    Concurrent lookups for the same table await a single fetch. A failed
    fetch is forgotten so the next call retries. Entries are never
    refreshed: schema edits made after the first load (renamed primary
    field, added columns) are not seen until a new cache is built.
    """

    def __init__(self, store: RecordStore):
        self.store = store
        self._entries: dict[str, LinkedTableMetadata] = {}
        self._pending: dict[str, asyncio.Future] = {}

    def __contains__(self, table_id: str) -> bool:
        return table_id.lower() in self._entries

    async def get(self, table_id: str) -> LinkedTableMetadata | None:
        """Return metadata for a table, or None if it cannot be loaded."""
        key = table_id.lower()
        cached = self._entries.get(key)
        if cached is not None:
            return cached

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._load(table_id))
            self._pending[key] = pending

        try:
            metadata = await asyncio.shield(pending)
        except StoreError as e:
            logger.warning("Failed to load metadata for table %s: %s", table_id, e)
            return None
        finally:
            if self._pending.get(key) is pending and pending.done():
                del self._pending[key]

        if metadata is not None:
            self._entries[key] = metadata
        return metadata

    async def _load(self, table_id: str) -> LinkedTableMetadata | None:
        table = await fetch_table(self.store, table_id)
        if table is None:
            logger.warning("Linked table not found: %s", table_id)
            return None
        fields = await fetch_fields(self.store, table_id)
        return LinkedTableMetadata(table=table, fields=fields)


def infer_primary_field_name(fields: list[Field]) -> str | None:
    """First non-system field in position order."""
    for f in sorted(fields, key=lambda f: f.position):
        if f.name not in SYSTEM_FIELD_NAMES:
            return f.name
    return None


def configured_primary_field_name(table: Table, fields: list[Field]) -> str | None:
    """The table's configured primary field, if it names a real column."""
    configured = (table.primary_field_name or "").strip()
    if not configured or configured == "id":
        return None
    if any(f.name == configured for f in fields):
        return configured
    return None


def pick_display_field(
    table: Table, fields: list[Field], linked_field_id: str | None = None
) -> str | None:
    """Choose the field used to label records of `table`.

    Fallback order: configured primary field, inferred primary field, the
    reciprocal field (by id or name), the first text-like field. None means
    records are displayed by id.
    """
    name = configured_primary_field_name(table, fields)
    if name:
        return name

    name = infer_primary_field_name(fields)
    if name:
        return name

    if linked_field_id:
        for f in fields:
            if f.id == linked_field_id or f.name == linked_field_id:
                return f.name

    for f in fields:
        if f.type in TEXT_LIKE_TYPES:
            return f.name
    return None


def search_field_names(table: Table, fields: list[Field]) -> list[str]:
    """Fields searched when matching pasted labels, in priority order."""
    names: list[str] = []
    primary = configured_primary_field_name(table, fields) or infer_primary_field_name(fields)
    if primary:
        names.append(primary)
    names.extend(f.name for f in fields if f.type in TEXT_LIKE_TYPES)
    if not names:
        names.extend(f.name for f in fields)
    return list(dict.fromkeys(names))
