"""
Notekeeper Backend - Access-Control Gate (Owner-Scoped Notes)
==============================================================

What:  Lets only a note's creator read, edit or delete it.
How:   Every gated operation reads the note through the store first and
       compares `note.created_by_id` with the caller's id afterwards, so a
       storage failure is never mistaken for an access failure.
Who:   Used by the HTML routes. The JSON API is not owner-scoped and
       talks to NoteStore directly.

Information hiding:
    A mismatch is reported as NotFoundError, with the same message a
    missing note produces. Callers cannot tell "exists but not yours" from
    "does not exist".

Gated mutation (edit/delete):
    Unauthenticated ──▶ AuthenticationError (operation rejected)
    Authenticated ──▶ read ──▶ NotFound ─────────────────▶ NotFoundError
                             ├▶ found, owner mismatch ───▶ NotFoundError
                             └▶ found, owner match ──────▶ mutate
"""

import logging
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from notekeeper.exceptions import AuthenticationError, NotFoundError, ValidationError
from notekeeper.schemas.note import Note, NoteInput
from notekeeper.services.identity import CurrentUser
from notekeeper.services.note_store import NoteId, NotePage, NoteStore
from notekeeper.storage.base import Cursor

logger = logging.getLogger(__name__)


def ensure_owner(note: Note, uid: Optional[str]) -> Note:
    """
    Permit the operation iff `note.created_by_id == uid`.

    Returns:
        The note, unchanged, when the caller owns it.

    Raises:
        AuthenticationError: no caller identity.
        NotFoundError: the caller is not the note's creator.
    """
    if not uid:
        raise AuthenticationError()
    if note.created_by_id is None or note.created_by_id != str(uid):
        logger.debug("Note %s hidden from non-owner", note.id)
        raise NotFoundError(resource="note", resource_id=str(note.id))
    return note


def _require(user: Optional[CurrentUser]) -> CurrentUser:
    if user is None or not user.id:
        raise AuthenticationError()
    return user


def _as_input(data: Union[NoteInput, Mapping[str, Any]]) -> NoteInput:
    if isinstance(data, NoteInput):
        return data
    try:
        return NoteInput.model_validate(data)
    except PydanticValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise ValidationError(
            message="Note data is invalid: " + ", ".join(fields),
            context={"fields": fields},
        ) from e


class OwnerScopedNotes:
    """
    The owner-scoped surface over a NoteStore.

    Owner, creator name and timestamps are set by the server; the caller
    only supplies title, description and (optionally) an image URL.
    """

    def __init__(self, store: NoteStore) -> None:
        self.store = store

    async def list(
        self,
        user: Optional[CurrentUser],
        limit: int,
        cursor: Optional[Union[Cursor, str]] = None,
    ) -> NotePage:
        """The caller's notes, `limit` per page."""
        user = _require(user)
        return await self.store.list_by_owner(user.id, limit, cursor)

    async def create(
        self,
        user: Optional[CurrentUser],
        data: Union[NoteInput, Mapping[str, Any]],
    ) -> Note:
        """Create a note owned by the caller."""
        user = _require(user)
        fields = _as_input(data)
        note = Note(
            title=fields.title,
            description=fields.description,
            image_url=fields.image_url,
            created_by=user.display_name,
            created_by_id=user.id,
        )
        return await self.store.create(note)

    async def read(self, user: Optional[CurrentUser], note_id: NoteId) -> Note:
        """Fetch a note the caller owns; NotFoundError otherwise."""
        user = _require(user)
        note = await self.store.read(note_id)
        return ensure_owner(note, user.id)

    async def update(
        self,
        user: Optional[CurrentUser],
        note_id: NoteId,
        data: Union[NoteInput, Mapping[str, Any]],
    ) -> Note:
        """
        Apply the caller's changes to a note they own.

        The submitted fields are merged over the stored record, so owner,
        creator name and created_at survive the write. An image URL only
        replaces the current one when a new one is supplied.
        """
        current = await self.read(user, note_id)
        changes = _as_input(data).model_dump(exclude_unset=True)
        if changes.get("image_url") is None:
            changes.pop("image_url", None)
        merged = current.model_copy(update=changes)
        return await self.store.update(current.id, merged)

    async def delete(self, user: Optional[CurrentUser], note_id: NoteId) -> None:
        """Delete a note the caller owns."""
        current = await self.read(user, note_id)
        await self.store.delete(current.id)
