"""
Notekeeper Backend - Routes Package
====================================

Route Inventory:
    - api.py:     /api/notes...           JSON CRUD, no ownership checks
    - notes.py:   /notes...               HTML pages, owner-scoped, sign-in required
    - auth.py:    /, /signin, /logout     Session entry and exit
    - images.py:  /images/{path}          Uploaded note images
    - health.py:  /health                 Service and storage status

Handlers stay thin: they translate HTTP into NoteStore / OwnerScopedNotes
calls and leave errors to the global exception handlers in main.py.
"""
