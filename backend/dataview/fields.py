"""Field and table definitions for dynamically-defined tables."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Union


FieldType = Literal[
    "text",
    "long_text",
    "url",
    "email",
    "number",
    "percent",
    "currency",
    "date",
    "checkbox",
    "single_select",
    "multi_select",
    "link_to_table",
    "lookup",
    "formula",
    "attachment",
    "json",
]
FIELD_TYPES: set[str] = {
    "text", "long_text", "url", "email",
    "number", "percent", "currency",
    "date", "checkbox",
    "single_select", "multi_select",
    "link_to_table", "lookup", "formula",
    "attachment", "json",
}

TEXT_LIKE_TYPES: set[str] = {"text", "long_text", "email", "url"}
NUMERIC_TYPES: set[str] = {"number", "percent", "currency"}
SELECT_TYPES: set[str] = {"single_select", "multi_select"}
COMPUTED_TYPES: set[str] = {"formula", "lookup"}

# Relationship types that store a list of record ids
MULTI_RELATIONSHIPS: set[str] = {"one-to-many", "many-to-many"}

RECORD_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_record_id(value: Any) -> bool:
    """True for strings in canonical 8-4-4-4-12 hex form (any case)."""
    return isinstance(value, str) and RECORD_ID_RE.match(value) is not None


def normalize_record_ids(value: Any) -> list[str]:
    """Coerce a stored link value into a list of record ids.

    Accepts a single id, a list of ids, or a list serialized as JSON text
    (some list-typed columns come back from the store as strings). Anything
    that is not canonical-id-shaped is dropped; ids come back lower-cased.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [v.lower() for v in value if is_record_id(v)]
    if isinstance(value, str):
        if is_record_id(value):
            return [value.lower()]
        stripped = value.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            try:
                parsed = json.loads(stripped)
            except ValueError:
                return []
            if isinstance(parsed, list):
                return [v.lower() for v in parsed if is_record_id(v)]
    return []


# ---------------------------------------------------------------------------
# Options variants (keyed by field type)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlainOptions:
    """Options for types that carry no configuration."""


@dataclass(frozen=True)
class NumberOptions:
    precision: int | None = None


@dataclass(frozen=True)
class SelectOptions:
    choices: tuple[str, ...] = ()


@dataclass(frozen=True)
class LinkOptions:
    linked_table_id: str | None = None
    linked_field_id: str | None = None  # Paired field in the linked table
    relationship_type: str | None = None  # one-to-many, many-to-many, or implicit one-to-one
    max_selections: int | None = None

    @property
    def is_multi(self) -> bool:
        if self.relationship_type in MULTI_RELATIONSHIPS:
            return True
        return self.max_selections is not None and self.max_selections > 1


FieldOptions = Union[PlainOptions, NumberOptions, SelectOptions, LinkOptions]


def _parse_number_options(raw: dict[str, Any]) -> NumberOptions:
    precision = raw.get("precision")
    if isinstance(precision, bool) or not isinstance(precision, (int, float)):
        return NumberOptions()
    return NumberOptions(precision=int(precision))


def _parse_select_options(raw: dict[str, Any]) -> SelectOptions:
    # selectOptions ({id, label}) supersedes the legacy choices list
    select_options = raw.get("selectOptions")
    if isinstance(select_options, list) and select_options:
        labels = [
            str(opt.get("label"))
            for opt in select_options
            if isinstance(opt, dict) and str(opt.get("label") or "").strip()
        ]
        return SelectOptions(choices=tuple(labels))

    choices = raw.get("choices")
    if isinstance(choices, list):
        return SelectOptions(choices=tuple(str(c) for c in choices if c is not None))
    return SelectOptions()


def _parse_link_options(raw: dict[str, Any]) -> LinkOptions:
    max_selections = raw.get("max_selections")
    if isinstance(max_selections, bool) or not isinstance(max_selections, (int, float)):
        max_selections = None
    return LinkOptions(
        linked_table_id=_str_or_none(raw.get("linked_table_id")),
        linked_field_id=_str_or_none(raw.get("linked_field_id")),
        relationship_type=_str_or_none(raw.get("relationship_type")),
        max_selections=int(max_selections) if max_selections is not None else None,
    )


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_options(field_type: str, raw: Any) -> FieldOptions:
    """Build the options variant for a field type from its stored JSON."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except ValueError:
            raw = {}
    if not isinstance(raw, dict):
        raw = {}

    if field_type in NUMERIC_TYPES:
        return _parse_number_options(raw)
    if field_type in SELECT_TYPES:
        return _parse_select_options(raw)
    if field_type == "link_to_table":
        return _parse_link_options(raw)
    return PlainOptions()


# ---------------------------------------------------------------------------
# Field / Table
# ---------------------------------------------------------------------------


@dataclass
class Field:
    id: str
    name: str
    type: str
    required: bool = False
    options: FieldOptions = field(default_factory=PlainOptions)
    table_id: str | None = None
    position: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Field":
        """Build a field from a `table_fields` row."""
        field_type = str(row.get("type") or "text")
        return cls(
            id=str(row["id"]),
            name=str(row["name"]),
            type=field_type,
            required=bool(row.get("required") or False),
            options=parse_options(field_type, row.get("options")),
            table_id=str(row["table_id"]) if row.get("table_id") is not None else None,
            position=int(row.get("position") or 0),
        )

    @property
    def is_computed(self) -> bool:
        return self.type in COMPUTED_TYPES

    @property
    def link_options(self) -> LinkOptions:
        """Link options, or an empty set for non-link fields."""
        if isinstance(self.options, LinkOptions):
            return self.options
        return LinkOptions()


@dataclass
class Table:
    id: str
    physical_name: str
    primary_field_name: str | None = None
    name: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Table":
        """Build a table from a `tables` row."""
        primary = row.get("primary_field_name")
        return cls(
            id=str(row["id"]),
            physical_name=str(row["physical_name"]),
            primary_field_name=str(primary).strip() or None if primary is not None else None,
            name=row.get("name"),
        )


def find_field(fields: list[Field], key: str | None) -> Field | None:
    """Find a field by id, falling back to name."""
    if not key:
        return None
    for f in fields:
        if f.id == key:
            return f
    for f in fields:
        if f.name == key:
            return f
    return None
