"""
Notekeeper Backend - Note Record and API Schemas
=================================================

What:  The application-level Note record plus the pydantic models defining
       the JSON contract.
How:   Python attributes are snake_case; storage property names and JSON keys
       are camelCase (`imageUrl`, `createdById`, ...) through an alias
       generator. Both spellings are accepted on input.
Who:   Note is produced and consumed by NoteStore; the response models are
       used by the JSON router.

Record shape:
    The field set is closed. Unknown keys in incoming data are ignored at
    the boundary instead of being stored, and `id` is never a storage
    property (the entity key carries it).
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


_CAMEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
)


# ══════════════════════════════════════════════════════════════════════════
# Application Record
# ══════════════════════════════════════════════════════════════════════════


class Note(BaseModel):
    """
    One note as the application sees it.

    Fields:
        id:            Store-assigned integer; None before the first save
        title:         Sort key of the unfiltered listing
        description:   Free text; excluded from the secondary index
        image_url:     Public URL of the attached image, if any
        created_by:    Display name of the creator (informational)
        created_by_id: Identity of the creator; the only ownership field
        created_at:    Epoch milliseconds, set once
        updated_at:    Epoch milliseconds, refreshed on every write
    """

    model_config = _CAMEL_CONFIG

    id: Optional[int] = None
    title: str = ""
    description: str = ""
    image_url: Optional[str] = None
    created_by: Optional[str] = None
    created_by_id: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    @field_validator("created_by_id", mode="before")
    @classmethod
    def coerce_owner_id(cls, v: Any) -> Any:
        """Identity providers may hand out numeric ids; ownership compares strings."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class NoteInput(BaseModel):
    """
    Fields a signed-in user may set through the HTML form.

    Anything not listed here (owner, timestamps, id) is controlled by the
    server, not by the submitted form.
    """

    model_config = _CAMEL_CONFIG

    title: str = ""
    description: str = ""
    image_url: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    """
    A note as returned by the JSON API.

    The identifier is rendered as a string at this boundary.
    """

    model_config = _CAMEL_CONFIG

    id: str = Field(description="Note identifier")
    title: str = Field(description="Note title")
    description: str = Field(description="Note body")
    image_url: Optional[str] = Field(default=None, description="Attached image URL")
    created_by: Optional[str] = Field(default=None, description="Creator display name")
    created_by_id: Optional[str] = Field(default=None, description="Creator identity")
    created_at: Optional[int] = Field(default=None, description="Creation time (epoch ms)")
    updated_at: Optional[int] = Field(default=None, description="Last write time (epoch ms)")

    @classmethod
    def from_note(cls, note: Note) -> "NoteResponse":
        return cls(**note.model_dump(exclude={"id"}), id=str(note.id))


class NoteListResponse(BaseModel):
    """
    One page of notes.

    next_page_token is null when this page ended the listing; otherwise it
    is passed back verbatim as `pageToken` to fetch the next page.
    """

    model_config = _CAMEL_CONFIG

    items: List[NoteResponse] = Field(description="Notes on this page")
    next_page_token: Optional[str] = Field(
        default=None,
        description="Opaque token for the next page; null when there are no more pages",
    )


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "not_found",
            "message": "note with ID '42' was not found",
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Service and storage status for monitoring and load balancer probes."""

    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    storage: str = Field(description="Storage connectivity: connected, disconnected")
    backend: str = Field(description="Configured storage backend")
    uptime_seconds: float = Field(description="Seconds since service started")
