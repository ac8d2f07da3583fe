from dataclasses import dataclass, field
from typing import Any


@dataclass
class CellChange:
    """A single cell write, and the unit of undo/redo."""

    row_id: str
    column_id: str
    field_name: str
    value: Any
    previous_value: Any = None

    def inverted(self) -> "CellChange":
        return CellChange(
            row_id=self.row_id,
            column_id=self.column_id,
            field_name=self.field_name,
            value=self.previous_value,
            previous_value=self.value,
        )


@dataclass
class CellError:
    """A rejected change and the reason it was rejected."""

    row_id: str
    column_id: str
    field_name: str
    value: Any
    error: str


@dataclass
class BatchMutationResult:
    """Every input change ends up in exactly one of `changes` or `errors`."""

    success: bool
    changes: list[CellChange] = field(default_factory=list)
    errors: list[CellError] = field(default_factory=list)
    applied_count: int = 0
    error_count: int = 0

    @classmethod
    def partition(
        cls, applied: list[CellChange], errors: list[CellError]
    ) -> "BatchMutationResult":
        return cls(
            success=not errors,
            changes=applied,
            errors=errors,
            applied_count=len(applied),
            error_count=len(errors),
        )

    @classmethod
    def empty(cls) -> "BatchMutationResult":
        """Result for a paste that produced nothing to apply."""
        return cls(success=False)
