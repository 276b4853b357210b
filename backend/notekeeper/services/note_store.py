"""
Notekeeper Backend - Note Store (Persistence and Query Layer)
==============================================================

What:  Sole translator between Note records and storage entities, and sole
       issuer of storage operations for the "Note" collection.
How:   Wraps an injected StorageClient. Records go out as typed properties
       (description flagged unindexed, unset fields dropped) and come back
       with the key id merged in as `id`.
Who:   Called by the JSON router directly and by OwnerScopedNotes for the
       HTML pages.
When:  Constructed once by the application lifespan with the configured
       storage engine.

Query shapes (the only two):
    list(limit, cursor)                   → all notes, ordered by title
    list_by_owner(owner, limit, cursor)   → createdById == owner, no order

Pagination policy:
    A page carries a next cursor only when it is full (len == limit). A
    short page ends the listing even if concurrent writes have since added
    matching notes after it: the guarantee is that paging terminates, not
    that it observes every concurrent insert.

Error Handling Strategy:
    Nothing is retried or swallowed. Engine failures arrive as
    StorageUnavailableError; anything unexpected from an engine is wrapped
    into one, carrying the operation and identifier.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, FrozenSet, List, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from notekeeper.exceptions import (
    NotekeeperError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
)
from notekeeper.schemas.note import Note
from notekeeper.storage.base import Cursor, Entity, Key, Property, Query, StorageClient

logger = logging.getLogger(__name__)

KIND = "Note"

# Properties the engine must not build a secondary index on
NON_INDEXED: FrozenSet[str] = frozenset({"description"})

# Largest id a storage engine can hold (signed 64-bit)
MAX_NOTE_ID = 2**63 - 1

NoteData = Union[Note, BaseModel, Mapping[str, Any]]
NoteId = Union[int, str]

T = TypeVar("T")


def _now_ms() -> int:
    return int(time.time() * 1000)


# ══════════════════════════════════════════════════════════════════════════
# Translation
# ══════════════════════════════════════════════════════════════════════════


def to_storage(note: Note, non_indexed: FrozenSet[str] = NON_INDEXED) -> List[Property]:
    """
    Translate a record into storage properties.

    Application format:
        Note(id=7, title="A", description="B", image_url=None, ...)

    Storage format:
        [Property("title", "A"), Property("description", "B", exclude_from_indexes=True), ...]

    Unset (None) fields are dropped rather than stored as null, and the id
    is left to the key.
    """
    data = note.model_dump(by_alias=True, exclude={"id"})
    return [
        Property(name=name, value=value, exclude_from_indexes=name in non_indexed)
        for name, value in data.items()
        if value is not None
    ]


def from_storage(entity: Entity) -> Note:
    """Translate an entity into a record, merging the key id in as `id`."""
    data = dict(entity.data)
    data["id"] = entity.key.id
    return Note.model_validate(data)


def coerce_note(data: NoteData) -> Note:
    """
    Build a Note from a record, another pydantic model or a mapping.

    Raises:
        ValidationError: a recognised field has a value of the wrong type.
    """
    if isinstance(data, Note):
        return data.model_copy()
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return Note.model_validate(data)
    except PydanticValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise ValidationError(
            message="Note data is invalid: " + ", ".join(fields),
            context={"fields": fields},
        ) from e


def parse_note_id(note_id: NoteId) -> int:
    """
    Convert an identifier from the boundary (int or decimal string) to the store's int.

    Raises:
        NotFoundError: the value can never name a stored note.
    """
    value: Optional[int] = None
    if isinstance(note_id, int) and not isinstance(note_id, bool):
        value = note_id
    elif isinstance(note_id, str):
        text = note_id.strip()
        # isdecimal() alone admits non-ASCII digits such as "\u0661"
        if text.isascii() and text.isdecimal():
            value = int(text)

    if value is None or not 0 < value <= MAX_NOTE_ID:
        raise NotFoundError(resource="note", resource_id=str(note_id))
    return value


# ══════════════════════════════════════════════════════════════════════════
# Store
# ══════════════════════════════════════════════════════════════════════════


@dataclass
class NotePage:
    """One page of a listing; next_cursor is None when the listing is done."""

    items: List[Note] = field(default_factory=list)
    next_cursor: Optional[Cursor] = None

    @property
    def next_page_token(self) -> Optional[str]:
        return self.next_cursor.token if self.next_cursor else None


class NoteStore:
    """
    Create/read/update/delete/list for notes over one storage engine.

    Args:
        client: Storage engine handle; its lifecycle belongs to the caller.
        clock: Returns "now" in epoch milliseconds (overridable in tests).
    """

    def __init__(self, client: StorageClient, clock: Callable[[], int] = _now_ms) -> None:
        self.client = client
        self._clock = clock

    async def create(self, data: NoteData) -> Note:
        """Store a new note under a freshly allocated id."""
        return await self.update(None, data)

    async def read(self, note_id: NoteId) -> Note:
        """
        Fetch one note.

        Raises:
            NotFoundError: the id does not resolve to a stored note.
            StorageUnavailableError: the engine call failed.
        """
        key = Key(KIND, parse_note_id(note_id))
        entity = await self._call("read", key.id, self.client.get(key))
        if entity is None:
            raise NotFoundError(resource="note", resource_id=str(key.id))
        return from_storage(entity)

    async def update(self, note_id: Optional[NoteId], data: NoteData) -> Note:
        """
        Create (note_id None) or fully overwrite (note_id given) a note.

        created_at is kept when present in `data`, otherwise set to now.
        updated_at is set to now, never earlier than created_at or a
        previous updated_at carried in `data`. There is no conflict check:
        concurrent overwrites of one id are last-writer-wins.

        Returns:
            The saved record, including its id.
        """
        note = coerce_note(data)
        if note_id is None or note_id == "":
            key = Key(KIND)
        else:
            key = Key(KIND, parse_note_id(note_id))

        now = self._clock()
        if note.created_at is None:
            note.created_at = now
        note.updated_at = max(now, note.created_at, note.updated_at or 0)

        entity = Entity(key=key, properties=to_storage(note))
        saved = await self._call("save", key.id, self.client.save(entity))
        note.id = saved.id

        logger.info(
            "Note %s %s (updated_at=%d)",
            note.id,
            "created" if key.id is None else "saved",
            note.updated_at,
        )
        return note

    async def delete(self, note_id: NoteId) -> None:
        """Remove a note. Deleting a missing id is not reported as an error."""
        key = Key(KIND, parse_note_id(note_id))
        await self._call("delete", key.id, self.client.delete(key))
        logger.info("Note %s deleted", key.id)

    async def list(self, limit: int, cursor: Optional[Union[Cursor, str]] = None) -> NotePage:
        """All notes ordered by title, `limit` per page."""
        query = Query(KIND).order_by("title")
        return await self._page(query, limit, cursor)

    async def list_by_owner(
        self,
        owner_id: Optional[str],
        limit: int,
        cursor: Optional[Union[Cursor, str]] = None,
    ) -> NotePage:
        """Notes whose createdById equals `owner_id`, `limit` per page, in no particular order."""
        if not owner_id:
            # Notes without an owner are never reachable through this listing
            self._check_limit(limit)
            return NotePage()
        query = Query(KIND).filter("createdById", str(owner_id))
        return await self._page(query, limit, cursor)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _page(
        self,
        query: Query,
        limit: int,
        cursor: Optional[Union[Cursor, str]],
    ) -> NotePage:
        self._check_limit(limit)
        if isinstance(cursor, Cursor) or cursor is None:
            start = cursor
        elif cursor == "":
            start = None
        else:
            start = Cursor.parse(cursor)

        result = await self._call(
            "query", None, self.client.run_query(query.with_limit(limit).start_at(start))
        )
        items = [from_storage(entity) for entity in result.entities]
        next_cursor = result.end_cursor if len(items) == limit else None
        return NotePage(items=items, next_cursor=next_cursor)

    @staticmethod
    def _check_limit(limit: int) -> None:
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            raise ValidationError(
                message="Page size must be a positive integer",
                field="limit",
                context={"limit": repr(limit)},
            )

    @staticmethod
    async def _call(operation: str, note_id: Optional[int], awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except NotekeeperError:
            raise
        except Exception as e:
            logger.error(
                "Unexpected storage error during %s of note %s: %s",
                operation,
                note_id,
                str(e),
                exc_info=True,
            )
            raise StorageUnavailableError(
                operation=operation,
                context={"kind": KIND, "id": note_id, "error_type": type(e).__name__},
            ) from e
