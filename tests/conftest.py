"""
Shared pytest fixtures for the data view engine tests.

This module provides:
- MemoryStore, an in-memory RecordStore that records every call
- Schema helpers for registering tables, fields and records
- A people/projects schema with a reciprocal link pair
"""

import re
import uuid
from typing import Any

import pytest

from dataview.fields import is_record_id
from dataview.metadata import FIELDS_TABLE, TABLES_TABLE
from dataview.service import DataViewEngine
from dataview.store import INVALID_TEXT_REPRESENTATION, RecordStore, StoreError


# =============================================================================
# In-memory store
# =============================================================================


def like_to_regex(pattern: str) -> re.Pattern:
    """Compile an escaped LIKE pattern into a case-insensitive regex."""
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


def _same(stored: Any, wanted: Any) -> bool:
    # uuid columns compare case-insensitively
    if is_record_id(stored) and is_record_id(wanted):
        return stored.lower() == wanted.lower()
    return stored == wanted


def _sort_key(value: Any) -> tuple[bool, Any]:
    # NULLS LAST
    return (value is None, value if value is not None else "")


class MemoryStore(RecordStore):
    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {TABLES_TABLE: [], FIELDS_TABLE: []}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        # (op, table) -> error raised on the next matching calls
        self.failures: dict[tuple[str, str], StoreError] = {}
        # (table, column) pairs typed as a single uuid; list writes fail
        self.scalar_id_columns: set[tuple[str, str]] = set()

    # -- schema helpers -----------------------------------------------------

    def add_table(self, physical_name: str, primary_field_name: str | None = None) -> str:
        table_id = str(uuid.uuid4())
        self.tables[TABLES_TABLE].append({
            "id": table_id,
            "name": physical_name.title(),
            "physical_name": physical_name,
            "primary_field_name": primary_field_name,
        })
        self.tables.setdefault(physical_name, [])
        return table_id

    def add_field(
        self,
        table_id: str,
        name: str,
        type: str = "text",
        options: dict[str, Any] | None = None,
        required: bool = False,
        field_id: str | None = None,
    ) -> str:
        field_id = field_id or str(uuid.uuid4())
        position = sum(1 for f in self.tables[FIELDS_TABLE] if f["table_id"] == table_id)
        self.tables[FIELDS_TABLE].append({
            "id": field_id,
            "table_id": table_id,
            "name": name,
            "type": type,
            "required": required,
            "options": options or {},
            "position": position,
        })
        return field_id

    def set_field_options(self, field_id: str, options: dict[str, Any]) -> None:
        for row in self.tables[FIELDS_TABLE]:
            if row["id"] == field_id:
                row["options"] = options

    def add_record(self, physical_name: str, **values: Any) -> str:
        record_id = values.pop("id", None) or str(uuid.uuid4())
        self.tables[physical_name].append({"id": record_id, **values})
        return record_id

    def record(self, physical_name: str, record_id: str) -> dict[str, Any] | None:
        for row in self.tables.get(physical_name, []):
            if _same(row["id"], record_id):
                return row
        return None

    def calls_to(self, op: str, table: str | None = None) -> list[dict[str, Any]]:
        return [kw for o, t, kw in self.calls if o == op and (table is None or t == table)]

    def fail(self, op: str, table: str, message: str, code: str | None = None) -> None:
        self.failures[(op, table)] = StoreError(message, code)

    # -- RecordStore --------------------------------------------------------

    def _check(self, op: str, table: str) -> list[dict[str, Any]]:
        error = self.failures.get((op, table))
        if error is not None:
            raise error
        if table not in self.tables:
            raise StoreError(f'relation "{table}" does not exist', "42P01")
        return self.tables[table]

    async def select(self, table, columns, *, eq=None, in_=None, ilike=None,
                     order_by=None, limit=None, offset=None):
        self.calls.append(("select", table, {
            "columns": list(columns), "eq": eq, "in_": in_, "ilike": ilike,
            "order_by": order_by, "limit": limit, "offset": offset,
        }))
        rows = self._check("select", table)

        matched = []
        for row in rows:
            if eq and not all(
                row.get(c) is None if v is None else _same(row.get(c), v)
                for c, v in eq.items()
            ):
                continue
            if in_ is not None:
                column, values = in_
                if not any(_same(row.get(column), v) for v in values):
                    continue
            if ilike is not None:
                column, pattern = ilike
                value = row.get(column)
                if value is None or not like_to_regex(pattern).fullmatch(str(value)):
                    continue
            matched.append(row)

        if order_by:
            matched.sort(key=lambda r: _sort_key(r.get(order_by)))
        start = offset or 0
        end = start + limit if limit is not None else None
        matched = matched[start:end]

        if columns == ["*"]:
            return [dict(r) for r in matched]
        return [{c: r.get(c) for c in columns} for r in matched]

    async def update(self, table, record_id, values):
        self.calls.append(("update", table, {"id": record_id, "values": dict(values)}))
        self._check("update", table)
        for column, value in values.items():
            if (table, column) in self.scalar_id_columns and isinstance(value, list):
                raise StoreError(
                    'invalid input syntax for type uuid: "{...}"', INVALID_TEXT_REPRESENTATION
                )
        row = self.record(table, record_id)
        if row is None:
            return 0
        for column, value in values.items():
            row[column] = list(value) if isinstance(value, list) else value
        return 1

    async def insert(self, table, row):
        self.calls.append(("insert", table, {"row": dict(row)}))
        rows = self._check("insert", table)
        inserted = {"id": str(uuid.uuid4()), **row}
        rows.append(inserted)
        return dict(inserted)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def engine(store) -> DataViewEngine:
    return DataViewEngine.create(store, chunk_size=2)


@pytest.fixture
def schema(store) -> dict[str, str]:
    """people <-> projects, linked many-to-many through members/projects.

    projects.members is the forward field; people.projects points back at it.
    projects.lead is a single link with reciprocal people.leads.
    """
    people = store.add_table("people", primary_field_name="name")
    projects = store.add_table("projects", primary_field_name="title")

    store.add_field(people, "name", required=True)
    store.add_field(people, "email", "email")
    store.add_field(projects, "title", required=True)
    store.add_field(projects, "budget", "number", {"precision": 2})
    store.add_field(projects, "status", "single_select", {"choices": ["open", "closed"]})

    members = store.add_field(
        projects, "members", "link_to_table",
        {"linked_table_id": people, "relationship_type": "many-to-many"},
    )
    back = store.add_field(
        people, "projects", "link_to_table",
        {"linked_table_id": projects, "linked_field_id": members,
         "relationship_type": "many-to-many"},
    )
    lead = store.add_field(
        projects, "lead", "link_to_table", {"linked_table_id": people},
    )
    leads = store.add_field(
        people, "leads", "link_to_table",
        {"linked_table_id": projects, "linked_field_id": lead},
    )
    store.add_field(projects, "total", "formula")

    alice = store.add_record("people", name="Alice", email="alice@example.com")
    bob = store.add_record("people", name="Bob")
    apollo = store.add_record("projects", title="Apollo", budget=10.0, status="open")
    gemini = store.add_record("projects", title="Gemini")

    return {
        "people": people,
        "projects": projects,
        "members": members,
        "back": back,
        "lead": lead,
        "leads": leads,
        "alice": alice,
        "bob": bob,
        "apollo": apollo,
        "gemini": gemini,
    }
