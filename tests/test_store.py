"""Tests for the Postgres-backed record store."""

from uuid import UUID

import psycopg
import psycopg.errors
import pytest
from psycopg import sql
from psycopg.types.json import Jsonb

import core.db as db
from dataview.store import (
    PostgresStore,
    StoreError,
    adapt_value,
    escape_like,
    sql_select,
    table_identifier,
    to_plain,
)


ID_A = "0b5e7f3a-1c2d-4e5f-8a9b-0c1d2e3f4a5b"


class TestSqlSelect:
    """Test SELECT parameter building."""

    def test_filters_become_params(self):
        """Equality, inclusion and pattern filters each get placeholders."""
        query, params = sql_select(
            "people", ["id", "name"],
            eq={"name": "Alice"}, in_=("id", [ID_A]), ilike=("name", "al%"),
            limit=5, offset=10,
        )
        assert isinstance(query, sql.Composed)
        assert params == {
            "eq_0": "Alice", "in_0": ID_A, "ilike": "al%", "limit": 5, "offset": 10,
        }

    def test_null_equality_has_no_param(self):
        """None filters render as IS NULL."""
        _, params = sql_select("people", ["id"], eq={"deleted_at": None})
        assert params == {}

    def test_empty_inclusion_list(self):
        """An empty id list needs no params."""
        _, params = sql_select("people", ["id"], in_=("id", []))
        assert params == {}

    def test_invalid_table_name(self):
        """Over-qualified names are rejected."""
        with pytest.raises(StoreError):
            table_identifier("a.b.c")


class TestValueAdaptation:
    """Test conversions between Python and driver values."""

    def test_id_list_as_uuids(self):
        """Lists of ids go out as uuid lists."""
        assert adapt_value([ID_A]) == [UUID(ID_A)]

    def test_documents_as_jsonb(self):
        """Dicts and nested lists are wrapped as JSON."""
        assert isinstance(adapt_value({"a": 1}), Jsonb)
        assert isinstance(adapt_value([{"a": 1}]), Jsonb)

    def test_scalars_unchanged(self):
        """Plain values pass through."""
        assert adapt_value("x") == "x"
        assert adapt_value(["red", "blue"]) == ["red", "blue"]

    def test_uuids_back_to_strings(self):
        """Driver UUIDs come back as strings."""
        assert to_plain([UUID(ID_A)]) == [ID_A]
        assert to_plain(UUID(ID_A)) == ID_A

    def test_escape_like(self):
        """Wildcards and backslashes are escaped."""
        assert escape_like("50%_a\\b") == "50\\%\\_a\\\\b"


class TestStoreErrors:
    """Test mapping of driver errors."""

    def test_type_mismatch_codes(self):
        """Both mismatch SQLSTATEs are recognized."""
        assert StoreError("x", "42804").is_column_type_mismatch is True
        assert StoreError('invalid input syntax for type uuid: "{}"', "22P02").is_column_type_mismatch
        assert StoreError("invalid input syntax for type integer", "22P02").is_column_type_mismatch is False
        assert StoreError("boom").is_column_type_mismatch is False

    @pytest.mark.asyncio
    async def test_select_maps_driver_errors(self, monkeypatch):
        """psycopg errors surface as StoreError with the SQLSTATE."""
        async def fail(query, params=None):
            raise psycopg.errors.UndefinedTable('relation "nope" does not exist')

        monkeypatch.setattr(db, "fetch_all", fail)

        with pytest.raises(StoreError) as exc:
            await PostgresStore().select("nope", ["id"])
        assert exc.value.code == "42P01"

    @pytest.mark.asyncio
    async def test_update_maps_mismatch(self, monkeypatch):
        """Writing a list to a uuid column reports a type mismatch."""
        async def fail(query, params=None):
            raise psycopg.errors.InvalidTextRepresentation(
                'invalid input syntax for type uuid: "{...}"'
            )

        monkeypatch.setattr(db, "execute", fail)

        with pytest.raises(StoreError) as exc:
            await PostgresStore().update("people", ID_A, {"projects": [ID_A]})
        assert exc.value.is_column_type_mismatch is True


class TestPostgresStore:
    """Test the store against a stubbed pool."""

    @pytest.mark.asyncio
    async def test_select_converts_rows(self, monkeypatch):
        """Rows come back as plain dicts."""
        async def fetch_all(query, params=None):
            return [{"id": UUID(ID_A), "name": "Alice"}]

        monkeypatch.setattr(db, "fetch_all", fetch_all)

        rows = await PostgresStore().select("people", ["id", "name"], eq={"id": ID_A})
        assert rows == [{"id": ID_A, "name": "Alice"}]

    @pytest.mark.asyncio
    async def test_update_params(self, monkeypatch):
        """Update binds one param per column plus the id."""
        seen = {}

        async def execute(query, params=None):
            seen.update(params)
            return 1

        monkeypatch.setattr(db, "execute", execute)

        count = await PostgresStore().update("people", ID_A, {"name": "Al", "tags": [ID_A]})

        assert count == 1
        assert seen == {"id": ID_A, "set_0": "Al", "set_1": [UUID(ID_A)]}

    @pytest.mark.asyncio
    async def test_empty_update(self):
        """Nothing to write touches nothing."""
        assert await PostgresStore().update("people", ID_A, {}) == 0

    @pytest.mark.asyncio
    async def test_insert_returns_row(self, monkeypatch):
        """Inserts return the stored row."""
        async def execute_returning(query, params=None):
            return {"id": UUID(ID_A), "name": params["val_0"]}

        monkeypatch.setattr(db, "execute_returning", execute_returning)

        row = await PostgresStore().insert("people", {"name": "Alice"})
        assert row == {"id": ID_A, "name": "Alice"}

    @pytest.mark.asyncio
    async def test_pool_not_initialized(self):
        """Ping reports an unreachable database without raising."""
        assert await db.ping() is False
