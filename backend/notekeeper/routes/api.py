"""
Notekeeper Backend - JSON API Routes
=====================================

What:  CRUD over notes as JSON under /api/notes.
How:   Thin handlers over NoteStore. This surface performs no ownership
       checks: any caller may list, read, write and delete any note.
Who:   Programmatic clients.

Routes:
    GET    /api/notes?pageToken=   → {"items": [...], "nextPageToken": str | null}
    POST   /api/notes              → created note
    GET    /api/notes/{id}         → note
    PUT    /api/notes/{id}         → note (full overwrite)
    DELETE /api/notes/{id}         → 200 "OK"

Errors use the standard JSON error body; a missing note additionally
carries "internalCode": 404.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from notekeeper.dependencies import get_note_store
from notekeeper.schemas.note import ErrorResponse, NoteListResponse, NoteResponse
from notekeeper.services.note_store import NoteStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["Notes API"])

_ERRORS = {
    400: {"description": "Invalid input or page token", "model": ErrorResponse},
    503: {"description": "Storage unavailable", "model": ErrorResponse},
}


@router.get(
    "",
    response_model=NoteListResponse,
    response_model_by_alias=True,
    responses=_ERRORS,
    summary="List notes ordered by title",
)
async def list_notes(
    request: Request,
    page_token: Optional[str] = Query(
        default=None,
        alias="pageToken",
        description="nextPageToken from the previous page; omit for the first page",
    ),
    store: NoteStore = Depends(get_note_store),
) -> NoteListResponse:
    page = await store.list(request.app.state.settings.page_size, page_token)
    return NoteListResponse(
        items=[NoteResponse.from_note(note) for note in page.items],
        next_page_token=page.next_page_token,
    )


@router.post(
    "",
    response_model=NoteResponse,
    response_model_by_alias=True,
    responses=_ERRORS,
    summary="Create a note",
)
async def create_note(
    body: Dict[str, Any] = Body(...),
    store: NoteStore = Depends(get_note_store),
) -> NoteResponse:
    note = await store.create(body)
    return NoteResponse.from_note(note)


@router.get(
    "/{note_id}",
    response_model=NoteResponse,
    response_model_by_alias=True,
    responses={404: {"description": "Note not found", "model": ErrorResponse}, **_ERRORS},
    summary="Get a note",
)
async def get_note(
    note_id: str,
    store: NoteStore = Depends(get_note_store),
) -> NoteResponse:
    return NoteResponse.from_note(await store.read(note_id))


@router.put(
    "/{note_id}",
    response_model=NoteResponse,
    response_model_by_alias=True,
    responses={404: {"description": "Invalid note id", "model": ErrorResponse}, **_ERRORS},
    summary="Overwrite a note",
)
async def update_note(
    note_id: str,
    body: Dict[str, Any] = Body(...),
    store: NoteStore = Depends(get_note_store),
) -> NoteResponse:
    """
    Replace the stored note with the body.

    createdAt is kept only if the body carries it; an id that was never
    issued is written as a new note under that id.
    """
    note = await store.update(note_id, body)
    return NoteResponse.from_note(note)


@router.delete(
    "/{note_id}",
    response_class=PlainTextResponse,
    responses=_ERRORS,
    summary="Delete a note",
)
async def delete_note(
    note_id: str,
    store: NoteStore = Depends(get_note_store),
) -> PlainTextResponse:
    await store.delete(note_id)
    return PlainTextResponse("OK")
