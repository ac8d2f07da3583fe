#!/usr/bin/env python3
"""Re-run reciprocal sync for every linked record so drifted columns converge.

Usage:
    python -m maintenance.repair_links [--dry-run] [--limit N] [--table TABLE_ID]

Options:
    --dry-run   Report what would be synced without writing
    --limit     Maximum records to visit per link field
    --table     Only repair link fields of this table
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass

from core.config import AppConfig
from core.db import close_pool, init_pool
from dataview.fields import Field, normalize_record_ids
from dataview.metadata import FIELD_COLUMNS, FIELDS_TABLE
from dataview.service import DataViewEngine
from dataview.store import PostgresStore, StoreError


@dataclass
class FieldRepair:
    field: Field
    visited: int = 0
    updated: int = 0
    failed: int = 0


async def link_fields(engine: DataViewEngine, table_id: str | None = None) -> list[Field]:
    eq = {"type": "link_to_table"}
    if table_id:
        eq["table_id"] = table_id
    rows = await engine.store.select(FIELDS_TABLE, FIELD_COLUMNS, eq=eq, order_by="position")
    return [Field.from_row(row) for row in rows]


async def repair_field(
    engine: DataViewEngine,
    field: Field,
    dry_run: bool = False,
    limit: int | None = None,
    page_size: int = 200,
) -> FieldRepair | None:
    """Sync each record's current value of one link field.

    Returns None when the field has no reciprocal to repair.
    """
    plan = await engine.sync.plan(field)
    if plan is None or not field.table_id:
        return None
    meta = await engine.metadata.get(field.table_id)
    if meta is None:
        return None

    repair = FieldRepair(field=field)
    offset = 0
    while limit is None or repair.visited < limit:
        size = page_size if limit is None else min(page_size, limit - repair.visited)
        rows = await engine.store.select(
            meta.table.physical_name,
            ["id", field.name],
            order_by="id",
            limit=size,
            offset=offset,
        )
        if not rows:
            break
        offset += len(rows)

        for row in rows:
            repair.visited += 1
            value = row.get(field.name)
            if not normalize_record_ids(value) or dry_run:
                continue
            outcome = await engine.sync.sync(
                meta.table.id,
                meta.table.physical_name,
                field.name,
                str(row["id"]),
                value,
                None,
            )
            repair.updated += len(outcome.updated)
            repair.failed += len(outcome.failures)

        if len(rows) < size:
            break
    return repair


async def main(dry_run: bool = False, limit: int | None = None, table_id: str | None = None) -> int:
    """Repair all link fields."""
    config = AppConfig.load()
    logging.basicConfig(level=config.dataview.log_level.upper())

    if not config.database.host:
        print("Error: No database configured")
        return 1

    print(f"Connecting to database: {config.database.host}/{config.database.name}")
    await init_pool(config.database.conninfo)
    try:
        engine = DataViewEngine.create(
            PostgresStore(), chunk_size=config.dataview.lookup_chunk_size
        )
        try:
            fields = await link_fields(engine, table_id)
        except StoreError as e:
            print(f"Error: Could not list link fields: {e}")
            return 1

        if dry_run:
            print("\n=== Dry run: no changes will be written ===")

        failures = 0
        for field in fields:
            try:
                repair = await repair_field(
                    engine, field, dry_run=dry_run, limit=limit,
                    page_size=config.dataview.lookup_chunk_size,
                )
            except StoreError as e:
                print(f"  {field.name}: failed ({e})")
                failures += 1
                continue
            if repair is None:
                print(f"  {field.name}: no reciprocal, skipped")
                continue
            print(
                f"  {field.name}: {repair.visited} records, "
                f"{repair.updated} updated, {repair.failed} failed"
            )
            failures += repair.failed

        print("\n=== Repair complete ===")
        return 0 if failures == 0 else 2
    finally:
        await close_pool()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Repair reciprocal link columns")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be synced without writing",
    )
    parser.add_argument("--limit", type=int, default=None, help="Max records per field")
    parser.add_argument("--table", default=None, help="Only repair this table's link fields")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(dry_run=args.dry_run, limit=args.limit, table_id=args.table)))
