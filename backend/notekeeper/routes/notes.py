"""
Notekeeper Backend - HTML Note Pages
=====================================

What:  Server-rendered pages for signed-in users to manage their own notes.
How:   Every handler depends on require_user, so anonymous requests are
       redirected to /signin by the AuthenticationError handler. Note
       access goes through OwnerScopedNotes, so a note owned by someone
       else renders the same 404 page as a missing one.
Who:   Browsers.

Routes:
    GET  /notes                 → the caller's notes (pageToken query)
    GET  /notes/add             → empty form
    POST /notes/add             → create, then redirect to /notes/{id}
    GET  /notes/{id}            → view
    GET  /notes/{id}/edit       → pre-filled form
    POST /notes/{id}/edit       → update, then redirect to /notes/{id}
    GET  /notes/{id}/delete     → delete, then redirect to /notes
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse

from notekeeper.dependencies import get_image_service, get_owner_notes, templates
from notekeeper.schemas.note import NoteInput
from notekeeper.services.access import OwnerScopedNotes
from notekeeper.services.identity import CurrentUser, require_user
from notekeeper.services.image_service import ImageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notes", tags=["Notes pages"], include_in_schema=False)


async def _upload_image(image: Optional[UploadFile], images: ImageService) -> Optional[str]:
    """Store the submitted image, if the form carried one; return its public URL."""
    if image is None or not image.filename:
        return None
    content = await image.read()
    if not content:
        return None
    return await images.upload(image.filename, content)


@router.get("", response_class=HTMLResponse)
async def list_notes(
    request: Request,
    page_token: Optional[str] = Query(default=None, alias="pageToken"),
    user: CurrentUser = Depends(require_user),
    notes: OwnerScopedNotes = Depends(get_owner_notes),
):
    page = await notes.list(user, request.app.state.settings.page_size, page_token)
    return templates.TemplateResponse(
        request,
        "notes/list.html",
        {"user": user, "notes": page.items, "next_page_token": page.next_page_token},
    )


@router.get("/add", response_class=HTMLResponse)
async def add_form(request: Request, user: CurrentUser = Depends(require_user)):
    return templates.TemplateResponse(
        request, "notes/form.html", {"user": user, "note": None, "action": "Add"}
    )


@router.post("/add")
async def add_note(
    title: str = Form(""),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    user: CurrentUser = Depends(require_user),
    notes: OwnerScopedNotes = Depends(get_owner_notes),
    images: ImageService = Depends(get_image_service),
) -> RedirectResponse:
    image_url = await _upload_image(image, images)
    note = await notes.create(
        user, NoteInput(title=title, description=description, image_url=image_url)
    )
    return RedirectResponse(url=f"/notes/{note.id}", status_code=303)


@router.get("/{note_id}", response_class=HTMLResponse)
async def view_note(
    request: Request,
    note_id: str,
    user: CurrentUser = Depends(require_user),
    notes: OwnerScopedNotes = Depends(get_owner_notes),
):
    note = await notes.read(user, note_id)
    return templates.TemplateResponse(request, "notes/view.html", {"user": user, "note": note})


@router.get("/{note_id}/edit", response_class=HTMLResponse)
async def edit_form(
    request: Request,
    note_id: str,
    user: CurrentUser = Depends(require_user),
    notes: OwnerScopedNotes = Depends(get_owner_notes),
):
    note = await notes.read(user, note_id)
    return templates.TemplateResponse(
        request, "notes/form.html", {"user": user, "note": note, "action": "Edit"}
    )


@router.post("/{note_id}/edit")
async def edit_note(
    note_id: str,
    title: str = Form(""),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    user: CurrentUser = Depends(require_user),
    notes: OwnerScopedNotes = Depends(get_owner_notes),
    images: ImageService = Depends(get_image_service),
) -> RedirectResponse:
    # Ownership is checked before anything is written to the image volume
    await notes.read(user, note_id)
    image_url = await _upload_image(image, images)
    note = await notes.update(
        user, note_id, NoteInput(title=title, description=description, image_url=image_url)
    )
    return RedirectResponse(url=f"/notes/{note.id}", status_code=303)


@router.get("/{note_id}/delete")
async def delete_note(
    note_id: str,
    user: CurrentUser = Depends(require_user),
    notes: OwnerScopedNotes = Depends(get_owner_notes),
) -> RedirectResponse:
    await notes.delete(user, note_id)
    return RedirectResponse(url="/notes", status_code=302)
