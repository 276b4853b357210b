"""
Notekeeper Backend - Abstract Storage Engine Interface
======================================================

What:  The primitive contract every storage engine implements: keyed
       entities made of typed properties, a secondary index over the
       properties that are not excluded from it, and cursor-based queries.
How:   Concrete engines inherit from StorageClient and implement save/get/
       delete/run_query. The note store depends only on this module.
Who:   Implemented by SQLStorageClient and MemoryStorageClient; consumed by
       NoteStore.

Index model:
    Every property whose `exclude_from_indexes` flag is False, and whose
    value is a string or an integer, gets an index entry. Equality filters
    and ascending orders are answered from the index only, so an entity
    whose property is unindexed (or missing) never matches a filter or
    appears in a query ordered by that property.

Cursor model:
    A Cursor is an opaque token. Engines encode the query fingerprint and
    the sort position of the last returned entity; resuming compares
    positions instead of counting an offset, so a cursor keeps working when
    rows before it are inserted or deleted.
"""

import base64
import binascii
import hashlib
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, final

from notekeeper.exceptions import InvalidCursorError


# ══════════════════════════════════════════════════════════════════════════
# Keys, Properties, Entities
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Key:
    """
    Identifies one entity: a kind (collection name) and an integer id.

    A key without an id is incomplete; saving it makes the engine allocate one.
    """

    kind: str
    id: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.id is not None

    def complete(self, entity_id: int) -> "Key":
        return Key(self.kind, entity_id)


@dataclass(frozen=True)
class Property:
    """One named, typed value of an entity."""

    name: str
    value: Any
    exclude_from_indexes: bool = False


@dataclass
class Entity:
    """A key plus the list of properties stored under it."""

    key: Key
    properties: List[Property] = field(default_factory=list)

    @property
    def data(self) -> Dict[str, Any]:
        return {prop.name: prop.value for prop in self.properties}

    def indexed_value(self, name: str) -> Optional["IndexValue"]:
        """Index entry for `name`, or None when the property is missing or unindexed."""
        for prop in self.properties:
            if prop.name == name:
                if prop.exclude_from_indexes:
                    return None
                return index_value(prop.value)
        return None


# What: Comparable form of an indexed value: (type rank, integer part, string part)
# Integers sort before strings; within a type values compare naturally.
IndexValue = Tuple[int, int, str]

RANK_INTEGER = 1
RANK_STRING = 2


def index_value(value: Any) -> Optional[IndexValue]:
    """Encode a property value for the index, or None when it cannot be indexed."""
    if isinstance(value, bool):
        return (RANK_INTEGER, int(value), "")
    if isinstance(value, int):
        return (RANK_INTEGER, value, "")
    if isinstance(value, str):
        return (RANK_STRING, 0, value)
    return None


# ══════════════════════════════════════════════════════════════════════════
# Cursors and Queries
# ══════════════════════════════════════════════════════════════════════════

@final
@dataclass(frozen=True)
class Cursor:
    """
    Opaque pagination token issued by a storage engine.

    Callers hand it back verbatim; only the engine that issued it decodes it.
    """

    token: str

    def __str__(self) -> str:
        return self.token

    @classmethod
    def parse(cls, token: Any) -> "Cursor":
        """Wrap a caller-supplied token; content is checked when the query runs."""
        if not isinstance(token, str) or not token.strip():
            raise InvalidCursorError(context={"token": repr(token)})
        return cls(token.strip())


@dataclass(frozen=True)
class Query:
    """
    A bounded query over one kind.

    Only equality filters and ascending orders are expressible. Builder
    methods return new Query objects:

        Query("Note").order_by("title").with_limit(10).start_at(cursor)
    """

    kind: str
    filters: Tuple[Tuple[str, Any], ...] = ()
    order: Tuple[str, ...] = ()
    limit: Optional[int] = None
    start: Optional[Cursor] = None

    def filter(self, name: str, value: Any) -> "Query":
        return replace(self, filters=self.filters + ((name, value),))

    def order_by(self, name: str) -> "Query":
        return replace(self, order=self.order + (name,))

    def with_limit(self, limit: int) -> "Query":
        return replace(self, limit=limit)

    def start_at(self, cursor: Optional[Cursor]) -> "Query":
        return replace(self, start=cursor)

    def fingerprint(self) -> str:
        """Stable digest of the query shape; cursors are only valid for the same shape."""
        shape = json.dumps(
            {"kind": self.kind, "filters": [list(f) for f in self.filters], "order": list(self.order)},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha1(shape.encode()).hexdigest()[:16]


@dataclass
class QueryResult:
    """Entities of one page plus the cursor positioned after the last of them."""

    entities: List[Entity]
    end_cursor: Optional[Cursor] = None


@dataclass(frozen=True)
class Position:
    """Decoded cursor content: sort values of the last entity and its id."""

    values: Tuple[IndexValue, ...]
    last_id: int

    def sort_key(self) -> Tuple[Any, ...]:
        return tuple(self.values) + (self.last_id,)


def encode_cursor(query: Query, entity: Entity) -> Cursor:
    """
    Build the cursor that resumes `query` right after `entity`.

    Format: url-safe base64 of {"q": fingerprint, "v": [[rank, int, str], ...], "id": id}
    """
    values = [list(entity.indexed_value(name)) for name in query.order]
    payload = {"q": query.fingerprint(), "v": values, "id": entity.key.id}
    raw = json.dumps(payload, separators=(",", ":")).encode()
    return Cursor(base64.urlsafe_b64encode(raw).decode())


def decode_cursor(query: Query, cursor: Cursor) -> Position:
    """
    Decode a cursor for `query`.

    Raises:
        InvalidCursorError: undecodable token, wrong structure, or a cursor
            issued for a different query shape.
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.token.encode())
        payload = json.loads(raw.decode())
    except (binascii.Error, ValueError, UnicodeDecodeError) as exc:
        raise InvalidCursorError(context={"reason": "undecodable"}) from exc

    if not isinstance(payload, dict) or payload.get("q") != query.fingerprint():
        raise InvalidCursorError(context={"reason": "query mismatch"})

    last_id = payload.get("id")
    values = payload.get("v")
    if (
        not isinstance(last_id, int)
        or isinstance(last_id, bool)
        or not isinstance(values, list)
        or len(values) != len(query.order)
    ):
        raise InvalidCursorError(context={"reason": "malformed position"})

    decoded = []
    for item in values:
        if (
            not isinstance(item, list)
            or len(item) != 3
            or item[0] not in (RANK_INTEGER, RANK_STRING)
            or not isinstance(item[1], int)
            or not isinstance(item[2], str)
        ):
            raise InvalidCursorError(context={"reason": "malformed position"})
        decoded.append((item[0], item[1], item[2]))

    return Position(values=tuple(decoded), last_id=last_id)


# ══════════════════════════════════════════════════════════════════════════
# Storage Client Interface
# ══════════════════════════════════════════════════════════════════════════

class StorageClient(ABC):
    """
    Abstract interface for a remote storage engine.

    Contract:
        - Every method is a single non-blocking call; nothing is retried here.
        - Transport and server failures surface as StorageUnavailableError
          carrying the operation name and identifier.
        - save() is a full overwrite with last-writer-wins semantics.
        - delete() is idempotent and does not report whether the key existed.
    """

    backend_name = "unknown"

    @abstractmethod
    async def save(self, entity: Entity) -> Key:
        """Persist `entity`, allocating an id for an incomplete key. Returns the complete key."""
        ...

    @abstractmethod
    async def get(self, key: Key) -> Optional[Entity]:
        """Fetch one entity, or None when the key does not resolve."""
        ...

    @abstractmethod
    async def delete(self, key: Key) -> None:
        """Remove an entity; deleting a missing key is not an error."""
        ...

    @abstractmethod
    async def run_query(self, query: Query) -> QueryResult:
        """
        Run a bounded query.

        Raises:
            InvalidCursorError: query.start cannot be decoded for this query.
        """
        ...

    async def health_check(self) -> bool:
        """Lightweight reachability probe used by /health."""
        return True

    async def close(self) -> None:
        """Release engine resources; called once at application shutdown."""
        return None
