"""Resolution between linked record ids and human-readable labels.

Link columns store record ids while users read and paste display labels.
Stored values that are not canonical ids (labels saved before ids were
enforced) are passed through as-is and never sent to an id lookup, which
would fail on the store's uuid column.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from dataview.fields import Field, is_record_id
from dataview.metadata import (
    LinkedTableMetadata,
    LinkedTableMetadataCache,
    pick_display_field,
    search_field_names,
)
from dataview.store import RecordStore, StoreError, escape_like
from dataview.validation import cardinality_error


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 200

TERM_SPLIT_RE = re.compile(r"[,\n]")


@dataclass
class LinkResolution:
    """Outcome of resolving pasted text: ids plus one message per failed term."""

    ids: str | list[str] | None
    errors: list[str] = field(default_factory=list)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    return [str(v) for v in items if v is not None and str(v) != ""]


class LinkResolver:
    def __init__(
        self,
        store: RecordStore,
        metadata: LinkedTableMetadataCache,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.store = store
        self.metadata = metadata
        self.chunk_size = chunk_size

    async def _display_target(self, field: Field) -> tuple[LinkedTableMetadata, str] | None:
        """Metadata and display column for a link field's target table."""
        options = field.link_options
        if not options.linked_table_id:
            return None
        meta = await self.metadata.get(options.linked_table_id)
        if meta is None:
            return None
        display_field = pick_display_field(meta.table, meta.fields, options.linked_field_id)
        if not display_field:
            return None
        return meta, display_field

    async def _fetch_labels(
        self, meta: LinkedTableMetadata, display_field: str, ids: list[str]
    ) -> dict[str, str]:
        """Map lower-cased id -> label, one query per chunk.

        Chunks that fail are left out so callers fall back to the id.
        """
        labels: dict[str, str] = {}
        for start in range(0, len(ids), self.chunk_size):
            chunk = ids[start:start + self.chunk_size]
            try:
                rows = await self.store.select(
                    meta.table.physical_name, ["id", display_field], in_=("id", chunk)
                )
            except StoreError as e:
                logger.warning(
                    "Failed to fetch labels from %s: %s", meta.table.physical_name, e
                )
                continue
            for row in rows:
                record_id = str(row.get("id") or "")
                if not record_id:
                    continue
                label = row.get(display_field)
                labels[record_id.lower()] = str(label) if label is not None else ""
        return labels

    async def resolve_display(self, field: Field, value: Any) -> str:
        """Render a stored link value as a comma-separated label string."""
        values = _as_list(value)
        if not values:
            return ""

        target = await self._display_target(field)
        if target is None:
            return ", ".join(values)
        meta, display_field = target

        record_ids = [v for v in values if is_record_id(v)]
        legacy = [v for v in values if not is_record_id(v)]
        if not record_ids:
            return ", ".join(legacy)

        found = await self._fetch_labels(meta, display_field, record_ids)
        labels = [found.get(rid.lower()) or rid for rid in record_ids]
        labels.extend(legacy)
        return ", ".join(labels)

    async def resolve_display_map(self, field: Field, ids: list[Any]) -> dict[str, str]:
        """Label every id in one batched pass; unknown ids map to themselves."""
        unique = list(dict.fromkeys(str(v).strip() for v in ids if v is not None and str(v).strip()))
        out: dict[str, str] = {}
        if not unique:
            return out

        target = await self._display_target(field)
        if target is None:
            return {v: v for v in unique}
        meta, display_field = target

        record_ids = [v for v in unique if is_record_id(v)]
        for legacy in (v for v in unique if not is_record_id(v)):
            out[legacy] = legacy

        found = await self._fetch_labels(meta, display_field, record_ids) if record_ids else {}
        for rid in record_ids:
            label = found.get(rid.lower()) or rid
            out[rid] = label
            out.setdefault(rid.lower(), label)
        return out

    async def resolve_pasted_value(self, field: Field, pasted_text: str) -> LinkResolution:
        """Resolve pasted labels or ids to record ids in the target table.

        Each comma- or newline-separated term is matched exactly, then
        case-insensitively, against the search fields in order. Several
        case-insensitive hits for a term are an ambiguity error; no record is
        picked.
        """
        options = field.link_options
        if not options.linked_table_id:
            return LinkResolution(
                ids=None,
                errors=["Linked field is not properly configured (missing target table)"],
            )

        meta = await self.metadata.get(options.linked_table_id)
        if meta is None:
            return LinkResolution(
                ids=None, errors=[f"Target table not found: {options.linked_table_id}"]
            )
        if not meta.fields:
            return LinkResolution(ids=None, errors=["Target table has no fields"])

        terms = [t.strip() for t in TERM_SPLIT_RE.split(pasted_text or "") if t.strip()]
        if not terms:
            return LinkResolution(ids=None, errors=["No values provided"])

        search_fields = search_field_names(meta.table, meta.fields)
        table_name = meta.table.physical_name

        resolved: list[str] = []
        errors: list[str] = []
        for term in terms:
            if is_record_id(term):
                if await self._record_exists(table_name, term):
                    resolved.append(term.lower())
                else:
                    errors.append(f'Record ID "{term}" not found in target table')
                continue

            record_id, error = await self._match_term(table_name, search_fields, term)
            if record_id:
                resolved.append(record_id)
            elif error:
                errors.append(error)
            else:
                errors.append(f'No record found matching "{term}"')

        if not options.is_multi and len(resolved) > 1:
            return LinkResolution(ids=None, errors=[cardinality_error(len(resolved))])

        if not resolved:
            return LinkResolution(ids=None, errors=errors)

        ids = list(dict.fromkeys(resolved)) if options.is_multi else resolved[0]
        return LinkResolution(ids=ids, errors=errors)

    async def _record_exists(self, table_name: str, record_id: str) -> bool:
        try:
            rows = await self.store.select(table_name, ["id"], eq={"id": record_id}, limit=1)
        except StoreError as e:
            logger.warning("Record lookup failed in %s: %s", table_name, e)
            return False
        return bool(rows)

    async def _match_term(
        self, table_name: str, search_fields: list[str], term: str
    ) -> tuple[str | None, str | None]:
        """Find the record a label refers to.

        Returns (record_id, None) on a match, (None, error) on an ambiguous
        match, and (None, None) when nothing matched.
        """
        for search_field in search_fields:
            try:
                exact = await self.store.select(
                    table_name, ["id"], eq={search_field: term}, limit=2
                )
                if len(exact) == 1:
                    return str(exact[0]["id"]).lower(), None
                if len(exact) > 1:
                    return None, _ambiguous(term, search_field, len(exact))

                loose = await self.store.select(
                    table_name,
                    ["id", search_field],
                    ilike=(search_field, escape_like(term)),
                    limit=2,
                )
            except StoreError as e:
                # e.g. a numeric column compared with text; try the next field
                logger.debug("Search on %s.%s failed: %s", table_name, search_field, e)
                continue

            if len(loose) == 1:
                return str(loose[0]["id"]).lower(), None
            if len(loose) > 1:
                same_case = [r for r in loose if r.get(search_field) == term]
                if len(same_case) == 1:
                    return str(same_case[0]["id"]).lower(), None
                return None, _ambiguous(term, search_field, len(loose))
        return None, None


def _ambiguous(term: str, search_field: str, count: int) -> str:
    return f'Ambiguous match for "{term}" in field "{search_field}": found {count} records'
