"""
Notekeeper Backend - Application Package Initializer
=====================================================

What:  Marks the `notekeeper` directory as a Python package.
Who:   Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend is layered; each layer only talks to the one below it.

    ┌─────────────────────────────────────┐
    │   Routes (JSON API + HTML pages)    │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Access gate (owner-scoped notes)  │  ← who may touch which note
    ├─────────────────────────────────────┤
    │   Note store (records ⇄ entities)   │  ← translation, queries, cursors
    ├─────────────────────────────────────┤
    │   Storage client (SQL or memory)    │  ← keys, properties, index, cursors
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
