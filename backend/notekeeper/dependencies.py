"""
Notekeeper Backend - Request Dependencies
==========================================

What:  FastAPI dependencies that hand route handlers the long-lived objects
       built by the application factory, plus the shared template renderer.
How:   create_app() puts the NoteStore and ImageService on app.state; these
       functions read them back per request.
"""

from pathlib import Path

from fastapi import Depends, Request
from fastapi.templating import Jinja2Templates

from notekeeper.services.access import OwnerScopedNotes
from notekeeper.services.image_service import ImageService
from notekeeper.services.note_store import NoteStore

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def get_note_store(request: Request) -> NoteStore:
    return request.app.state.note_store


def get_owner_notes(store: NoteStore = Depends(get_note_store)) -> OwnerScopedNotes:
    return OwnerScopedNotes(store)


def get_image_service(request: Request) -> ImageService:
    return request.app.state.image_service
