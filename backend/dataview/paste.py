"""Mapping between a selection in the grid view and clipboard blocks."""

from dataclasses import dataclass
from typing import Any, Literal, Union

from dataview.changes import CellChange
from dataview.clipboard import format_cell_value, format_clipboard_text
from dataview.fields import Field, find_field


PasteMode = Literal["vertical", "horizontal", "grid"]


@dataclass(frozen=True)
class CellSelection:
    row_id: str
    column_id: str


@dataclass(frozen=True)
class RowSelection:
    row_ids: tuple[str, ...]


@dataclass(frozen=True)
class ColumnSelection:
    column_id: str


Selection = Union[CellSelection, RowSelection, ColumnSelection]


@dataclass
class ViewLayout:
    """Row and column order of the current view."""

    row_ids: list[str]
    columns: list[Field]  # Visible columns, left to right

    def column_index(self, column_id: str) -> int:
        for i, column in enumerate(self.columns):
            if column.id == column_id or column.name == column_id:
                return i
        return -1


@dataclass
class PasteTarget:
    row_id: str
    column_id: str
    field_name: str
    # Clipboard cell the value comes from
    clip_row: int
    clip_col: int


@dataclass
class PasteIntent:
    targets: list[PasteTarget]
    paste_mode: PasteMode


def _has_value(grid: list[list[str]], r: int, c: int) -> bool:
    return r < len(grid) and c < len(grid[r]) and grid[r][c].strip() != ""


def resolve_paste_intent(
    selection: Selection, grid: list[list[str]], layout: ViewLayout
) -> PasteIntent | None:
    """Turn a selection plus clipboard grid into the cells to write.

    Blank clipboard cells are skipped (no change), as is anything that
    falls outside the view.
    """
    if not grid:
        return None

    if isinstance(selection, ColumnSelection):
        col = layout.column_index(selection.column_id)
        if col == -1 or not layout.row_ids:
            return None
        column = layout.columns[col]
        targets = [
            PasteTarget(row_id, column.id, column.name, clip_row=r, clip_col=0)
            for r, row_id in enumerate(layout.row_ids)
            if _has_value(grid, r, 0)
        ]
        return PasteIntent(targets=targets, paste_mode="vertical")

    if isinstance(selection, RowSelection):
        row_ids = [rid for rid in selection.row_ids if rid in layout.row_ids]
        if not row_ids:
            return None
        targets = []
        for c, column in enumerate(layout.columns):
            if not _has_value(grid, 0, c):
                continue
            for row_id in row_ids:
                targets.append(PasteTarget(row_id, column.id, column.name, clip_row=0, clip_col=c))
        return PasteIntent(targets=targets, paste_mode="horizontal")

    # Anchored at the active cell
    if selection.row_id not in layout.row_ids:
        return None
    anchor_row = layout.row_ids.index(selection.row_id)
    anchor_col = layout.column_index(selection.column_id)
    if anchor_col == -1:
        return None

    width = max(len(row) for row in grid)
    if width == 1 and len(grid) > 1:
        mode: PasteMode = "vertical"
    elif len(grid) == 1 and width > 1:
        mode = "horizontal"
    else:
        mode = "grid"

    targets = []
    for r, clip_row in enumerate(grid):
        target_row = anchor_row + r
        if target_row >= len(layout.row_ids):
            break
        for c in range(len(clip_row)):
            target_col = anchor_col + c
            if target_col >= len(layout.columns):
                break
            if not _has_value(grid, r, c):
                continue
            column = layout.columns[target_col]
            targets.append(
                PasteTarget(layout.row_ids[target_row], column.id, column.name, clip_row=r, clip_col=c)
            )
    return PasteIntent(targets=targets, paste_mode=mode)


def build_paste_changes(intent: PasteIntent, grid: list[list[str]]) -> list[CellChange]:
    """Pair each target with its clipboard value."""
    changes = []
    for target in intent.targets:
        if not _has_value(grid, target.clip_row, target.clip_col):
            continue
        changes.append(
            CellChange(
                row_id=target.row_id,
                column_id=target.column_id,
                field_name=target.field_name,
                value=grid[target.clip_row][target.clip_col],
            )
        )
    return changes


def copy_selection(
    selection: Selection, layout: ViewLayout, rows: dict[str, dict[str, Any]]
) -> str:
    """Format the selected cells as clipboard text."""
    if isinstance(selection, CellSelection):
        row = rows.get(selection.row_id)
        column = find_field(layout.columns, selection.column_id)
        if row is None or column is None:
            return ""
        return format_cell_value(row.get(column.name), column)

    if isinstance(selection, RowSelection):
        selected = set(selection.row_ids)
        grid = [
            [format_cell_value(rows[row_id].get(c.name), c) for c in layout.columns]
            for row_id in layout.row_ids
            if row_id in selected and row_id in rows
        ]
        return format_clipboard_text(grid)

    column = find_field(layout.columns, selection.column_id)
    if column is None:
        return ""
    return "\n".join(
        format_cell_value(rows[row_id].get(column.name), column)
        for row_id in layout.row_ids
        if row_id in rows
    )
