"""Undo/redo over applied cell changes."""

import time
from dataclasses import dataclass, field

from dataview.changes import BatchMutationResult, CellChange
from dataview.paste import Selection
from dataview.service import DataViewService


DEFAULT_HISTORY_LIMIT = 50


@dataclass
class HistoryEntry:
    changes: list[CellChange]
    timestamp: float = field(default_factory=time.time)


class HistoryManager:
    """Three stacks: `past`, the `present` entry, and `future`.

    Only changes that were actually applied are recorded, and each stack
    keeps at most `limit` entries (oldest dropped first).
    """

    def __init__(self, service: DataViewService, limit: int = DEFAULT_HISTORY_LIMIT):
        self.service = service
        self.limit = limit
        self.past: list[HistoryEntry] = []
        self.present: HistoryEntry | None = None
        self.future: list[HistoryEntry] = []

    @property
    def can_undo(self) -> bool:
        return self.present is not None

    @property
    def can_redo(self) -> bool:
        return bool(self.future)

    def record(self, changes: list[CellChange]) -> None:
        """Push a new present entry; any redo history is discarded."""
        if not changes:
            return
        if self.present is not None:
            self.past.append(self.present)
            self._trim(self.past)
        self.present = HistoryEntry(changes=list(changes))
        self.future = []

    async def apply(self, changes: list[CellChange]) -> BatchMutationResult:
        result = await self.service.apply_cell_changes(changes)
        self.record(result.changes)
        return result

    async def paste(self, selection: Selection, text: str) -> BatchMutationResult:
        result = await self.service.paste(selection, text)
        self.record(result.changes)
        return result

    async def undo(self) -> BatchMutationResult | None:
        """Revert the present entry, newest change first."""
        if self.present is None:
            return None
        entry = self.present
        inverse = [change.inverted() for change in reversed(entry.changes)]
        result = await self.service.apply_cell_changes(inverse)

        self.future.append(entry)
        self._trim(self.future)
        self.present = self.past.pop() if self.past else None
        return result

    async def redo(self) -> BatchMutationResult | None:
        if not self.future:
            return None
        entry = self.future.pop()
        result = await self.service.apply_cell_changes(entry.changes)

        if self.present is not None:
            self.past.append(self.present)
            self._trim(self.past)
        self.present = entry
        return result

    def clear(self) -> None:
        self.past = []
        self.present = None
        self.future = []

    def _trim(self, stack: list[HistoryEntry]) -> None:
        if len(stack) > self.limit:
            del stack[: len(stack) - self.limit]
