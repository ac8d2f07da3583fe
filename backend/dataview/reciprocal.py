"""Bidirectional sync between a link field and its reciprocal field.

After a link field write commits, the paired field in the linked table is
brought in line one record at a time. The source write is never undone:
propagation failures are logged and reported, and the reciprocal side
converges on the next edit (or a repair run).

Direction comes from the written field's own options:

- it carries `linked_field_id`: it is the reciprocal half, and the write is
  mirrored back onto the field it names (reverse);
- otherwise it is the forward half, and the write is mirrored onto the field
  in the linked table whose `linked_field_id` points at it. With no such
  field the link is one-way and nothing propagates.

Cardinality (single vs multi) comes from the field being written to, so a
single link paired with a multi-link reciprocal appends to the list.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from dataview.fields import Field, is_record_id, normalize_record_ids
from dataview.metadata import (
    FIELD_COLUMNS,
    FIELDS_TABLE,
    LinkedTableMetadataCache,
    fetch_field,
    fetch_field_by_name,
)
from dataview.store import RecordStore, StoreError


logger = logging.getLogger(__name__)

# Propagation never goes deeper than the echo of the original write
MAX_PROPAGATION_DEPTH = 1

SyncFailureKind = Literal["record-not-found", "column-type-mismatch", "write-failure"]


class SyncDirection(str, Enum):
    FORWARD = "forward"
    REVERSE = "reverse"


@dataclass(frozen=True)
class PropagationContext:
    """Marks how far a write is from the user's original edit.

    Depth 0 is a user edit; anything deeper is a reciprocal echo and is
    not propagated again.
    """

    depth: int = 0

    @property
    def is_echo(self) -> bool:
        return self.depth >= MAX_PROPAGATION_DEPTH

    def echo(self) -> "PropagationContext":
        return PropagationContext(depth=self.depth + 1)


USER_EDIT = PropagationContext()


@dataclass
class SyncFailure:
    kind: SyncFailureKind
    record_id: str
    message: str


@dataclass
class SyncPlan:
    direction: SyncDirection
    target_table: str  # Physical name
    target_field: str
    is_multi: bool


@dataclass
class SyncOutcome:
    plan: SyncPlan | None = None
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    failures: list[SyncFailure] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.plan is None


class ReciprocalSyncEngine:
    def __init__(self, store: RecordStore, metadata: LinkedTableMetadataCache):
        self.store = store
        self.metadata = metadata

    async def sync(
        self,
        source_table_id: str,
        source_table_name: str,
        source_field_name: str,
        source_record_id: str,
        new_value: Any,
        old_value: Any,
        context: PropagationContext = USER_EDIT,
    ) -> SyncOutcome:
        """Mirror a committed link field write onto the reciprocal field."""
        if context.is_echo:
            return SyncOutcome()

        if not is_record_id(source_record_id):
            logger.warning("Invalid source record id for sync: %s", source_record_id)
            return SyncOutcome()

        source_record_id = source_record_id.lower()

        try:
            written = await fetch_field_by_name(self.store, source_table_id, source_field_name)
            if written is None:
                logger.warning(
                    "Field %s not found on %s (%s)",
                    source_field_name, source_table_name, source_table_id,
                )
                return SyncOutcome()
            if written.type != "link_to_table":
                return SyncOutcome()
            plan = await self.plan(written)
        except StoreError as e:
            logger.error("Could not load sync metadata for %s: %s", source_field_name, e)
            return SyncOutcome()
        if plan is None:
            return SyncOutcome()

        old_ids = normalize_record_ids(old_value)
        new_ids = normalize_record_ids(new_value)
        added = [rid for rid in new_ids if rid not in old_ids]
        removed = [rid for rid in old_ids if rid not in new_ids]

        outcome = SyncOutcome(plan=plan, added=added, removed=removed)
        if not added and not removed:
            return outcome

        if plan.is_multi:
            for target_id in added:
                await self._add_to_list(plan, target_id, source_record_id, outcome)
            for target_id in removed:
                await self._remove_from_list(plan, target_id, source_record_id, outcome)
        else:
            for target_id in added:
                await self._write(plan, target_id, source_record_id, outcome)
            for target_id in removed:
                await self._write(plan, target_id, None, outcome)

        return outcome

    async def plan(self, written: Field) -> SyncPlan | None:
        """Work out which table and column mirror a write to `written`."""
        options = written.link_options

        if options.linked_field_id:
            forward = await fetch_field(self.store, options.linked_field_id)
            if forward is None or forward.type != "link_to_table":
                logger.warning(
                    "Paired field %s for %s is missing or not a link field",
                    options.linked_field_id, written.name,
                )
                return None
            if not forward.table_id:
                return None
            meta = await self.metadata.get(forward.table_id)
            if meta is None:
                return None
            return SyncPlan(
                direction=SyncDirection.REVERSE,
                target_table=meta.table.physical_name,
                target_field=forward.name,
                is_multi=forward.link_options.is_multi,
            )

        if not options.linked_table_id:
            return None
        reciprocal = await self._find_reciprocal(written)
        if reciprocal is None:
            # One-way link
            return None
        meta = await self.metadata.get(options.linked_table_id)
        if meta is None:
            return None
        return SyncPlan(
            direction=SyncDirection.FORWARD,
            target_table=meta.table.physical_name,
            target_field=reciprocal.name,
            is_multi=reciprocal.link_options.is_multi,
        )

    async def _find_reciprocal(self, forward: Field) -> Field | None:
        rows = await self.store.select(
            FIELDS_TABLE,
            FIELD_COLUMNS,
            eq={"table_id": forward.link_options.linked_table_id, "type": "link_to_table"},
            order_by="position",
        )
        for row in rows:
            candidate = Field.from_row(row)
            if candidate.link_options.linked_field_id == forward.id:
                return candidate
        return None

    async def _current_ids(
        self, plan: SyncPlan, target_id: str, outcome: SyncOutcome
    ) -> list[str] | None:
        try:
            rows = await self.store.select(
                plan.target_table, ["id", plan.target_field], eq={"id": target_id}, limit=1
            )
        except StoreError as e:
            self._fail(outcome, "write-failure", target_id, str(e))
            return None
        if not rows:
            self._fail(
                outcome, "record-not-found", target_id,
                f"Record {target_id} not found in {plan.target_table}",
            )
            return None
        stored = rows[0].get(plan.target_field)
        ids = normalize_record_ids(stored)
        if isinstance(stored, (list, tuple)) and len(ids) < len(stored):
            logger.warning(
                "Dropping %d non-id entries from %s.%s on %s",
                len(stored) - len(ids), plan.target_table, plan.target_field, target_id,
            )
        return ids

    async def _add_to_list(
        self, plan: SyncPlan, target_id: str, source_id: str, outcome: SyncOutcome
    ) -> None:
        current = await self._current_ids(plan, target_id, outcome)
        if current is None or source_id in current:
            return
        await self._write(plan, target_id, current + [source_id], outcome)

    async def _remove_from_list(
        self, plan: SyncPlan, target_id: str, source_id: str, outcome: SyncOutcome
    ) -> None:
        current = await self._current_ids(plan, target_id, outcome)
        if current is None or source_id not in current:
            return
        remaining = [rid for rid in current if rid != source_id]
        await self._write(plan, target_id, remaining or None, outcome)

    async def _write(
        self, plan: SyncPlan, target_id: str, value: Any, outcome: SyncOutcome
    ) -> None:
        """Write the whole reciprocal value of one record."""
        try:
            count = await self.store.update(
                plan.target_table, target_id, {plan.target_field: value}
            )
        except StoreError as e:
            if plan.is_multi and e.is_column_type_mismatch:
                self._fail(
                    outcome, "column-type-mismatch", target_id,
                    f"Column {plan.target_field} holds a single id, cannot store a list; "
                    "migrate it to an id array to enable multi-link sync",
                )
            else:
                self._fail(outcome, "write-failure", target_id, str(e))
            return

        if count == 0:
            self._fail(
                outcome, "record-not-found", target_id,
                f"Record {target_id} not found in {plan.target_table}",
            )
            return
        outcome.updated.append(target_id)

    def _fail(
        self, outcome: SyncOutcome, kind: SyncFailureKind, record_id: str, message: str
    ) -> None:
        if kind == "write-failure":
            logger.error("Reciprocal sync failed for %s: %s", record_id, message)
        else:
            logger.warning("Reciprocal sync skipped %s: %s", record_id, message)
        outcome.failures.append(SyncFailure(kind=kind, record_id=record_id, message=message))
