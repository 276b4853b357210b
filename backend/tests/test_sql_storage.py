"""
Notekeeper Backend - SQL Storage Engine Tests
==============================================

What:  SQLStorageClient against in-memory SQLite: key allocation, index
       maintenance, kind isolation, and error wrapping.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.schema import CreateTable
from unittest.mock import AsyncMock, MagicMock

from notekeeper.exceptions import StorageUnavailableError, ValidationError
from notekeeper.models.entity import EntityRecord, IndexEntry
from notekeeper.storage import SQLStorageClient
from notekeeper.storage.base import Entity, Key, Property, Query


def _note(title, owner="u1", key=None):
    return Entity(
        key=key or Key("Note"),
        properties=[
            Property("title", title),
            Property("description", "body", exclude_from_indexes=True),
            Property("createdById", owner),
        ],
    )


async def _index_rows(client: SQLStorageClient, entity_id: int):
    async with client._session_factory() as session:
        result = await session.execute(
            select(IndexEntry).where(IndexEntry.entity_id == entity_id)
        )
        return {row.name: row for row in result.scalars().all()}


class TestSQLWrites:

    @pytest.mark.asyncio
    async def test_save_allocates_increasing_ids(self, sql_client):
        first = await sql_client.save(_note("a"))
        second = await sql_client.save(_note("b"))
        assert first.is_complete and second.is_complete
        assert second.id > first.id

    @pytest.mark.asyncio
    async def test_round_trip_keeps_property_flags(self, sql_client):
        key = await sql_client.save(_note("a"))
        entity = await sql_client.get(key)

        flags = {p.name: p.exclude_from_indexes for p in entity.properties}
        assert flags == {"title": False, "description": True, "createdById": False}
        assert entity.data["description"] == "body"

    @pytest.mark.asyncio
    async def test_unindexed_properties_get_no_index_rows(self, sql_client):
        key = await sql_client.save(_note("a"))
        rows = await _index_rows(sql_client, key.id)
        assert set(rows) == {"title", "createdById"}
        assert rows["title"].string_value == "a"

    @pytest.mark.asyncio
    async def test_overwrite_replaces_index_rows(self, sql_client):
        key = await sql_client.save(_note("old", owner="u1"))
        await sql_client.save(Entity(key=key, properties=[Property("title", "new")]))

        rows = await _index_rows(sql_client, key.id)
        assert set(rows) == {"title"}
        assert rows["title"].string_value == "new"

        query = Query("Note").filter("createdById", "u1")
        assert (await sql_client.run_query(query)).entities == []

    @pytest.mark.asyncio
    async def test_save_with_unused_explicit_id_inserts(self, sql_client):
        key = await sql_client.save(_note("explicit", key=Key("Note", 500)))
        assert key.id == 500
        assert (await sql_client.get(Key("Note", 500))).data["title"] == "explicit"

    @pytest.mark.asyncio
    async def test_explicit_id_then_allocated_id_do_not_collide(self, sql_client):
        await sql_client.save(_note("explicit", key=Key("Note", 500)))
        allocated = await sql_client.save(_note("allocated"))
        assert allocated.id == 501

    @pytest.mark.asyncio
    async def test_ids_beyond_32_bits_are_stored(self, sql_client):
        key = await sql_client.save(_note("big", key=Key("Note", 2**40)))
        assert (await sql_client.get(key)).data["title"] == "big"
        assert set(await _index_rows(sql_client, 2**40)) == {"title", "createdById"}

    @pytest.mark.asyncio
    async def test_id_of_another_kind_is_rejected(self, sql_client):
        key = await sql_client.save(Entity(key=Key("Book"), properties=[Property("title", "x")]))
        with pytest.raises(ValidationError):
            await sql_client.save(_note("clash", key=Key("Note", key.id)))

    @pytest.mark.asyncio
    async def test_delete_removes_entity_and_index(self, sql_client):
        key = await sql_client.save(_note("a"))
        await sql_client.delete(key)

        assert await sql_client.get(key) is None
        assert await _index_rows(sql_client, key.id) == {}

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, sql_client):
        key = await sql_client.save(_note("a"))
        await sql_client.delete(key)
        await sql_client.delete(key)


class TestSQLReads:

    @pytest.mark.asyncio
    async def test_get_checks_kind(self, sql_client):
        key = await sql_client.save(_note("a"))
        assert await sql_client.get(Key("Book", key.id)) is None

    @pytest.mark.asyncio
    async def test_query_is_scoped_to_kind(self, sql_client):
        await sql_client.save(_note("note"))
        await sql_client.save(Entity(key=Key("Book"), properties=[Property("title", "book")]))

        result = await sql_client.run_query(Query("Note").order_by("title"))

        assert [e.data["title"] for e in result.entities] == ["note"]

    @pytest.mark.asyncio
    async def test_entities_without_order_property_are_excluded(self, sql_client):
        await sql_client.save(_note("titled"))
        await sql_client.save(Entity(key=Key("Note"), properties=[Property("createdById", "u1")]))

        result = await sql_client.run_query(Query("Note").order_by("title"))

        assert [e.data["title"] for e in result.entities] == ["titled"]

    @pytest.mark.asyncio
    async def test_integers_sort_before_strings(self, sql_client):
        await sql_client.save(Entity(key=Key("Note"), properties=[Property("title", "a")]))
        await sql_client.save(Entity(key=Key("Note"), properties=[Property("title", 10)]))
        await sql_client.save(Entity(key=Key("Note"), properties=[Property("title", 2)]))

        result = await sql_client.run_query(Query("Note").order_by("title"))

        assert [e.data["title"] for e in result.entities] == [2, 10, "a"]

    @pytest.mark.asyncio
    async def test_filter_on_unindexed_property_matches_nothing(self, sql_client):
        await sql_client.save(_note("a"))
        result = await sql_client.run_query(Query("Note").filter("description", "body"))
        assert result.entities == []

    @pytest.mark.asyncio
    async def test_end_cursor_absent_on_empty_result(self, sql_client):
        result = await sql_client.run_query(Query("Note").order_by("title").with_limit(5))
        assert result.entities == []
        assert result.end_cursor is None

    @pytest.mark.asyncio
    async def test_health_check(self, sql_client):
        assert await sql_client.health_check() is True


class TestSQLFailures:

    @pytest.mark.asyncio
    async def test_engine_error_becomes_storage_unavailable(self, sql_client):
        failing = MagicMock(side_effect=OperationalError("SELECT", {}, Exception("gone")))
        client = SQLStorageClient(sql_client.engine, session_factory=failing)

        with pytest.raises(StorageUnavailableError) as exc_info:
            await client.get(Key("Note", 1))

        assert exc_info.value.context["operation"] == "get"
        assert exc_info.value.context["id"] == 1
        assert exc_info.value.context["error_type"] == "OperationalError"


class TestPostgresSchema:
    """Behavior that only shows on PostgreSQL, checked without a server."""

    def test_id_columns_are_64_bit(self):
        dialect = postgresql.dialect()
        entities = str(CreateTable(EntityRecord.__table__).compile(dialect=dialect))
        index = str(CreateTable(IndexEntry.__table__).compile(dialect=dialect))

        assert "id BIGSERIAL" in entities
        assert "entity_id BIGINT" in index

    @pytest.mark.asyncio
    async def test_explicit_id_insert_advances_sequence(self):
        engine = MagicMock()
        engine.dialect.name = "postgresql"
        client = SQLStorageClient(engine, session_factory=MagicMock())
        session = MagicMock()
        session.execute = AsyncMock()

        await client._advance_id_sequence(session)

        statement = str(session.execute.await_args.args[0])
        assert "setval(pg_get_serial_sequence('entities', 'id')" in statement
        assert "MAX(id)" in statement

    @pytest.mark.asyncio
    async def test_sqlite_needs_no_sequence_sync(self, sql_client):
        session = MagicMock()
        session.execute = AsyncMock()

        await sql_client._advance_id_sequence(session)

        session.execute.assert_not_awaited()
