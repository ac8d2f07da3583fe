import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dataview.changes import BatchMutationResult, CellChange, CellError
from dataview.clipboard import parse_cell_value, parse_clipboard_text
from dataview.fields import Field, Table, find_field
from dataview.linked_fields import DEFAULT_CHUNK_SIZE, LinkResolver
from dataview.metadata import LinkedTableMetadataCache
from dataview.paste import (
    Selection,
    ViewLayout,
    build_paste_changes,
    copy_selection,
    resolve_paste_intent,
)
from dataview.reciprocal import USER_EDIT, PropagationContext, ReciprocalSyncEngine
from dataview.store import RecordStore, StoreError
from dataview.validation import ValidationResult, validate_value

if TYPE_CHECKING:
    from dataview.history import HistoryManager


logger = logging.getLogger(__name__)


@dataclass
class DataViewContext:
    """The table a view shows, plus the rows it currently holds."""

    table: Table
    fields: list[Field]
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_order: list[str] | None = None  # Defaults to the order of `rows`
    visible_field_ids: list[str] | None = None  # Defaults to every field

    def get_field(self, key: str | None) -> Field | None:
        return find_field(self.fields, key)

    def get_row(self, row_id: str) -> dict[str, Any] | None:
        key = row_id.lower()
        for row in self.rows:
            if str(row.get("id") or "").lower() == key:
                return row
        return None

    def layout(self) -> ViewLayout:
        row_ids = self.row_order if self.row_order is not None else [
            str(row["id"]) for row in self.rows if row.get("id") is not None
        ]
        if self.visible_field_ids is None:
            columns = sorted(self.fields, key=lambda f: f.position)
        else:
            columns = [f for f in (self.get_field(fid) for fid in self.visible_field_ids) if f]
        return ViewLayout(row_ids=list(row_ids), columns=columns)


class DataViewService:
    """Cell edits, paste and copy for one table view.

    Changes are applied one cell at a time; there is no transaction across
    a batch, so a failure part-way through leaves earlier cells written.
    """

    def __init__(
        self,
        context: DataViewContext,
        store: RecordStore,
        links: LinkResolver,
        sync: ReciprocalSyncEngine,
    ):
        self.context = context
        self.store = store
        self.links = links
        self.sync = sync

    def validate_value(self, column_id: str, value: Any) -> ValidationResult:
        """Check one value against a column without writing it."""
        f = self.context.get_field(column_id)
        if f is None:
            return ValidationResult(valid=False, error=f"Field not found: {column_id}")
        return validate_value(f, parse_cell_value(value, f))

    def copy(self, selection: Selection) -> str:
        rows = {str(row["id"]): row for row in self.context.rows if row.get("id") is not None}
        return copy_selection(selection, self.context.layout(), rows)

    async def paste(
        self, selection: Selection, text: str, context: PropagationContext = USER_EDIT
    ) -> BatchMutationResult:
        grid = parse_clipboard_text(text)
        intent = resolve_paste_intent(selection, grid, self.context.layout())
        if intent is None:
            return BatchMutationResult.empty()
        changes = build_paste_changes(intent, grid)
        if not changes:
            return BatchMutationResult.empty()
        return await self.apply_cell_changes(changes, context)

    async def apply_cell_changes(
        self, changes: list[CellChange], context: PropagationContext = USER_EDIT
    ) -> BatchMutationResult:
        """Validate and write each change, then sync link fields."""
        applied: list[CellChange] = []
        errors: list[CellError] = []

        for change in changes:
            f = self.context.get_field(change.column_id) or self.context.get_field(change.field_name)
            if f is None:
                errors.append(_error(change, f"Field not found: {change.field_name}"))
                continue

            if f.is_computed:
                errors.append(
                    _error(change, f'Field "{f.name}" is a computed field and cannot be edited')
                )
                continue

            candidate = parse_cell_value(change.value, f)
            result = validate_value(f, candidate)
            if not result.valid and result.needs_resolution:
                result = await self._resolve_link_text(f, candidate)
            if not result.valid:
                errors.append(_error(change, result.error or "Invalid value"))
                continue

            value = result.normalized_value
            previous = await self._previous_value(change, f)

            try:
                count = await self.store.update(
                    self.context.table.physical_name, change.row_id, {f.name: value}
                )
            except StoreError as e:
                logger.error("Failed to save %s on %s: %s", f.name, change.row_id, e)
                errors.append(_error(change, f"Failed to save {f.name}: {e.message}"))
                continue
            if count == 0:
                logger.warning("Record not found: %s", change.row_id)
                errors.append(_error(change, f"Record not found: {change.row_id}"))
                continue

            row = self.context.get_row(change.row_id)
            if row is not None:
                row[f.name] = value

            applied.append(
                CellChange(
                    row_id=change.row_id,
                    column_id=f.id,
                    field_name=f.name,
                    value=value,
                    previous_value=previous,
                )
            )

            if f.type == "link_to_table":
                await self.sync.sync(
                    self.context.table.id,
                    self.context.table.physical_name,
                    f.name,
                    change.row_id,
                    value,
                    previous,
                    context,
                )

        return BatchMutationResult.partition(applied, errors)

    async def _resolve_link_text(self, f: Field, text: Any) -> ValidationResult:
        if not isinstance(text, str):
            return ValidationResult(
                valid=False,
                error=f'Invalid value for "{f.name}". Expected record ID or display name.',
            )
        resolution = await self.links.resolve_pasted_value(f, text)
        if resolution.errors:
            return ValidationResult(valid=False, error="; ".join(resolution.errors))
        if resolution.ids is None:
            return ValidationResult(valid=False, error=f'Could not resolve "{text}" for "{f.name}"')
        return ValidationResult(valid=True, normalized_value=resolution.ids)

    async def _previous_value(self, change: CellChange, f: Field) -> Any:
        """Value before the write: from the loaded row, else one read."""
        row = self.context.get_row(change.row_id)
        if row is not None:
            return row.get(f.name)
        try:
            rows = await self.store.select(
                self.context.table.physical_name,
                ["id", f.name],
                eq={"id": change.row_id},
                limit=1,
            )
        except StoreError as e:
            logger.warning("Could not read previous value of %s: %s", f.name, e)
            return change.previous_value
        return rows[0].get(f.name) if rows else change.previous_value


def _error(change: CellChange, message: str) -> CellError:
    return CellError(
        row_id=change.row_id,
        column_id=change.column_id,
        field_name=change.field_name,
        value=change.value,
        error=message,
    )


class DataViewEngine:
    """Shared collaborators for every table view in the process."""

    def __init__(
        self,
        store: RecordStore,
        metadata: LinkedTableMetadataCache,
        links: LinkResolver,
        sync: ReciprocalSyncEngine,
        history_limit: int = 50,
    ):
        self.store = store
        self.metadata = metadata
        self.links = links
        self.sync = sync
        self.history_limit = history_limit

    @classmethod
    def create(
        cls,
        store: RecordStore,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        history_limit: int = 50,
    ) -> "DataViewEngine":
        metadata = LinkedTableMetadataCache(store)
        return cls(
            store=store,
            metadata=metadata,
            links=LinkResolver(store, metadata, chunk_size),
            sync=ReciprocalSyncEngine(store, metadata),
            history_limit=history_limit,
        )

    async def load_context(
        self,
        table_id: str,
        rows: list[dict[str, Any]] | None = None,
        row_order: list[str] | None = None,
        visible_field_ids: list[str] | None = None,
    ) -> DataViewContext | None:
        meta = await self.metadata.get(table_id)
        if meta is None:
            return None
        return DataViewContext(
            table=meta.table,
            fields=list(meta.fields),
            rows=rows or [],
            row_order=row_order,
            visible_field_ids=visible_field_ids,
        )

    def service(self, context: DataViewContext) -> DataViewService:
        return DataViewService(context, self.store, self.links, self.sync)

    def history(self, context: DataViewContext) -> "HistoryManager":
        """Undo/redo for one view, capped at the configured depth."""
        from dataview.history import HistoryManager

        return HistoryManager(self.service(context), limit=self.history_limit)
