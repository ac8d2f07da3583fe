from dataclasses import dataclass
from typing import Any


@dataclass
class ColumnMeta:
    """Metadata for a column in a table response."""

    key: str
    label: str
    type: str  # Field type, e.g. "text", "number", "link_to_table"


@dataclass
class MultiRowResponse:
    """Response containing multiple rows with column metadata."""

    columns: list[ColumnMeta]
    data: list[dict[str, Any]]
