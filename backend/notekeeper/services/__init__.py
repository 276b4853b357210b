"""
Notekeeper Backend - Services Layer
====================================

Service Inventory:
    - note_store.NoteStore:        Record/entity translation and all note storage calls
    - access.OwnerScopedNotes:     Ownership gate over NoteStore for the HTML pages
    - identity:                    Signed-in user from the session
    - image_service.ImageService:  Validates and stores uploaded images

Services know nothing about HTTP status codes; they raise the exceptions
in notekeeper.exceptions and main.py maps them to responses.
"""
