from dataclasses import dataclass
from typing import Any

from litestar import Controller, get, post
from litestar.exceptions import HTTPException, NotFoundException
from litestar.params import Parameter

from core.responses import ColumnMeta, MultiRowResponse
from dataview.changes import BatchMutationResult, CellChange
from dataview.service import DataViewContext, DataViewEngine
from dataview.store import StoreError


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------


@dataclass
class CellChangeInput:
    """One cell edit as sent by the grid."""

    row_id: str
    column_id: str
    value: Any = None
    field_name: str = ""


@dataclass
class ChangesRequest:
    changes: list[CellChangeInput]


@dataclass
class LinkedLabelsRequest:
    """Record ids to label for a link field."""

    field_id: str
    ids: list[str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _load_context(engine: DataViewEngine, table_id: str) -> DataViewContext:
    context = await engine.load_context(table_id)
    if context is None:
        raise NotFoundException(detail=f"Table not found: {table_id}")
    return context


def _columns(context: DataViewContext) -> list[ColumnMeta]:
    return [ColumnMeta(key="id", label="ID", type="uuid")] + [
        ColumnMeta(key=f.name, label=f.name, type=f.type)
        for f in context.layout().columns
    ]


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class RecordsController(Controller):
    path = "/api/tables/{table_id:str}"
    tags = ["records"]

    @get("/records")
    async def list_records(
        self,
        engine: DataViewEngine,
        table_id: str,
        limit: int = Parameter(default=100, le=1000, ge=1),
        offset: int = Parameter(default=0, ge=0),
    ) -> MultiRowResponse:
        """List records of a table with its field metadata."""
        context = await _load_context(engine, table_id)
        columns = _columns(context)
        try:
            rows = await engine.store.select(
                context.table.physical_name,
                [c.key for c in columns],
                limit=limit,
                offset=offset,
            )
        except StoreError as e:
            raise HTTPException(status_code=500, detail=f"Failed to load records: {e.message}")
        return MultiRowResponse(columns=columns, data=rows)

    @post("/changes", status_code=200)
    async def apply_changes(
        self,
        engine: DataViewEngine,
        table_id: str,
        data: ChangesRequest,
    ) -> BatchMutationResult:
        """Apply a batch of cell edits; failed cells are reported, not raised."""
        context = await _load_context(engine, table_id)
        changes = [
            CellChange(
                row_id=c.row_id,
                column_id=c.column_id,
                field_name=c.field_name or c.column_id,
                value=c.value,
            )
            for c in data.changes
        ]
        return await engine.service(context).apply_cell_changes(changes)

    @post("/linked-labels", status_code=200)
    async def linked_labels(
        self,
        engine: DataViewEngine,
        table_id: str,
        data: LinkedLabelsRequest,
    ) -> dict[str, str]:
        """Map linked record ids to display labels."""
        context = await _load_context(engine, table_id)
        field = context.get_field(data.field_id)
        if field is None:
            raise NotFoundException(detail=f"Field not found: {data.field_id}")
        if field.type != "link_to_table":
            raise HTTPException(status_code=400, detail=f'Field "{field.name}" is not a link field')
        return await engine.links.resolve_display_map(field, data.ids)
