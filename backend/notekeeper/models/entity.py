"""
Notekeeper Backend - Entity Storage Models
===========================================

What:  ORM models for the SQL storage engine: one row per entity and one
       index row per indexed property.
How:   `entities.properties` holds the full property list as JSON (name,
       value, excludeFromIndexes). `entity_index` mirrors only the indexed
       properties in typed, comparable columns; queries filter and sort
       through it and never look inside the JSON.
Who:   Used by SQLStorageClient and by Alembic for schema management.

Table Design:
    entities
        id          BIGINT PK (allocated by the database)
        kind        collection name, e.g. "Note"
        properties  JSON list of {"name", "value", "excludeFromIndexes"}

    entity_index
        (entity_id, name)  PK
        value_rank         1 = integer, 2 = string (integers sort first)
        integer_value      value for rank 1, 0 otherwise
        string_value       value for rank 2, '' otherwise

    Index on (name, value_rank, integer_value, string_value, entity_id):
        Serves both query shapes: equality on createdById, and ordering by
        title with the (value, id) keyset used for cursors.
"""

from typing import Any, Dict, List

from sqlalchemy import JSON, BigInteger, ForeignKey, Index, Integer, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notekeeper.database import Base

# BIGINT in PostgreSQL; SQLite only autoincrements a column declared INTEGER
EntityId = BigInteger().with_variant(Integer, "sqlite")


class EntityRecord(Base):
    """One stored entity of any kind."""

    __tablename__ = "entities"

    id: Mapped[int] = mapped_column(
        EntityId,
        primary_key=True,
        autoincrement=True,
        comment="Entity identifier, allocated on first save",
    )

    kind: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Collection the entity belongs to",
    )

    properties: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Full property list, including unindexed properties",
    )

    def __repr__(self) -> str:
        return f"<EntityRecord(id={self.id}, kind='{self.kind}')>"


class IndexEntry(Base):
    """Index row for one indexed property of one entity."""

    __tablename__ = "entity_index"

    entity_id: Mapped[int] = mapped_column(
        EntityId,
        ForeignKey("entities.id", ondelete="CASCADE"),
        primary_key=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Property name",
    )

    value_rank: Mapped[int] = mapped_column(
        SmallInteger,
        nullable=False,
        comment="1 = integer value, 2 = string value",
    )

    integer_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    string_value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )

    __table_args__ = (
        Index(
            "idx_entity_index_lookup",
            "name",
            "value_rank",
            "integer_value",
            "string_value",
            "entity_id",
        ),
    )

    def __repr__(self) -> str:
        return f"<IndexEntry(entity_id={self.entity_id}, name='{self.name}')>"
