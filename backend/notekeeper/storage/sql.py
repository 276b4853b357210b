"""
Notekeeper Backend - SQL Storage Engine
========================================

What:  StorageClient backed by async SQLAlchemy (asyncpg in production,
       aiosqlite in tests).
How:   Each call opens its own session and transaction, so a call either
       fully applies or fully fails. Engine errors are wrapped in
       StorageUnavailableError with the operation and identifier.
Who:   Constructed by notekeeper.storage.create_storage_client at startup;
       consumed by NoteStore.

Query plan (title listing, page 2):
    SELECT entities.* FROM entities
    JOIN entity_index AS o ON o.entity_id = entities.id AND o.name = 'title'
    WHERE entities.kind = 'Note'
      AND (o.value_rank, o.integer_value, o.string_value, entities.id) > (:r, :i, :s, :id)
    ORDER BY o.value_rank, o.integer_value, o.string_value, entities.id
    LIMIT :limit
    → idx_entity_index_lookup gives an index seek on (name, value, id)
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, delete, select, text, tuple_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from notekeeper.database import create_session_factory
from notekeeper.exceptions import StorageUnavailableError, ValidationError
from notekeeper.models.entity import EntityRecord, IndexEntry
from notekeeper.storage.base import (
    Entity,
    Key,
    Property,
    Query,
    QueryResult,
    StorageClient,
    decode_cursor,
    encode_cursor,
    index_value,
)

logger = logging.getLogger(__name__)

_SYNC_ID_SEQUENCE = text(
    "SELECT setval(pg_get_serial_sequence('entities', 'id'), "
    "(SELECT MAX(id) FROM entities))"
)


def _serialize_properties(properties: List[Property]) -> List[Dict[str, Any]]:
    return [
        {"name": p.name, "value": p.value, "excludeFromIndexes": p.exclude_from_indexes}
        for p in properties
    ]


def _deserialize_properties(raw: List[Dict[str, Any]]) -> List[Property]:
    return [
        Property(
            name=item["name"],
            value=item.get("value"),
            exclude_from_indexes=bool(item.get("excludeFromIndexes", False)),
        )
        for item in raw or []
    ]


def _index_entries(entity_id: int, properties: List[Property]) -> List[IndexEntry]:
    entries = []
    for prop in properties:
        if prop.exclude_from_indexes:
            continue
        encoded = index_value(prop.value)
        if encoded is None:
            continue
        rank, integer_value, string_value = encoded
        entries.append(
            IndexEntry(
                entity_id=entity_id,
                name=prop.name,
                value_rank=rank,
                integer_value=integer_value,
                string_value=string_value,
            )
        )
    return entries


def _to_entity(record: EntityRecord) -> Entity:
    return Entity(
        key=Key(record.kind, record.id),
        properties=_deserialize_properties(record.properties),
    )


class SQLStorageClient(StorageClient):
    """
    Storage engine over the `entities` and `entity_index` tables.

    Args:
        engine: Async engine; disposed by close().
        session_factory: Optional factory override (tests).
    """

    backend_name = "sql"

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self.engine = engine
        self._session_factory = session_factory or create_session_factory(engine)

    # ── Writes ────────────────────────────────────────────────────────────

    async def save(self, entity: Entity) -> Key:
        key = entity.key
        payload = _serialize_properties(entity.properties)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if key.is_complete:
                        record = await session.get(EntityRecord, key.id)
                        if record is None:
                            record = EntityRecord(id=key.id, kind=key.kind, properties=payload)
                            session.add(record)
                            await session.flush()
                            await self._advance_id_sequence(session)
                        elif record.kind != key.kind:
                            raise ValidationError(
                                message=f"Identifier {key.id} belongs to another collection",
                                field="id",
                                context={"kind": key.kind, "id": key.id},
                            )
                        else:
                            record.properties = payload
                            await session.execute(
                                delete(IndexEntry).where(IndexEntry.entity_id == key.id)
                            )
                    else:
                        record = EntityRecord(kind=key.kind, properties=payload)
                        session.add(record)
                        # Assigns the id without committing the transaction
                        await session.flush()

                    session.add_all(_index_entries(record.id, entity.properties))
                saved = key.complete(record.id)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("save", key, e) from e

        logger.debug("Saved %s/%s", saved.kind, saved.id)
        return saved

    async def _advance_id_sequence(self, session: AsyncSession) -> None:
        """
        Move the PostgreSQL id sequence past the highest stored id.

        An insert under a caller-chosen id bypasses the sequence, and the
        next allocated id would collide with it. SQLite allocates
        max(rowid) + 1 and needs nothing.
        """
        if self.engine.dialect.name != "postgresql":
            return
        await session.execute(_SYNC_ID_SEQUENCE)

    async def delete(self, key: Key) -> None:
        if not key.is_complete:
            return
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    owned = select(EntityRecord.id).where(
                        EntityRecord.id == key.id, EntityRecord.kind == key.kind
                    )
                    await session.execute(
                        delete(IndexEntry).where(IndexEntry.entity_id.in_(owned))
                    )
                    await session.execute(
                        delete(EntityRecord).where(
                            EntityRecord.id == key.id, EntityRecord.kind == key.kind
                        )
                    )
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("delete", key, e) from e

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get(self, key: Key) -> Optional[Entity]:
        if not key.is_complete:
            return None
        try:
            async with self._session_factory() as session:
                record = await session.get(EntityRecord, key.id)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("get", key, e) from e

        if record is None or record.kind != key.kind:
            return None
        return _to_entity(record)

    async def run_query(self, query: Query) -> QueryResult:
        # Decode first so a bad cursor is reported as such, never as an engine failure
        position = decode_cursor(query, query.start) if query.start else None

        stmt = select(EntityRecord).where(EntityRecord.kind == query.kind)

        for name, value in query.filters:
            wanted = index_value(value)
            if wanted is None:
                # Unindexable values never match an index lookup
                return QueryResult(entities=[], end_cursor=None)
            idx = aliased(IndexEntry)
            stmt = stmt.join(
                idx, and_(idx.entity_id == EntityRecord.id, idx.name == name)
            ).where(
                idx.value_rank == wanted[0],
                idx.integer_value == wanted[1],
                idx.string_value == wanted[2],
            )

        sort_columns = []
        for name in query.order:
            idx = aliased(IndexEntry)
            stmt = stmt.join(idx, and_(idx.entity_id == EntityRecord.id, idx.name == name))
            sort_columns.extend([idx.value_rank, idx.integer_value, idx.string_value])
        sort_columns.append(EntityRecord.id)

        if position is not None:
            bound = [part for value in position.values for part in value] + [position.last_id]
            if len(sort_columns) == 1:
                stmt = stmt.where(EntityRecord.id > position.last_id)
            else:
                stmt = stmt.where(tuple_(*sort_columns) > tuple_(*bound))

        stmt = stmt.order_by(*sort_columns)
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                records = list(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("query", Key(query.kind), e) from e

        entities = [_to_entity(record) for record in records]
        end_cursor = encode_cursor(query, entities[-1]) if entities else None
        return QueryResult(entities=entities, end_cursor=end_cursor)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def health_check(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Storage health check failed: %s", str(e))
            return False

    async def close(self) -> None:
        await self.engine.dispose()

    @staticmethod
    def _unavailable(operation: str, key: Key, error: Exception) -> StorageUnavailableError:
        logger.error(
            "Storage %s failed for %s/%s: %s",
            operation,
            key.kind,
            key.id,
            str(error),
        )
        return StorageUnavailableError(
            operation=operation,
            context={"kind": key.kind, "id": key.id, "error_type": type(error).__name__},
        )
