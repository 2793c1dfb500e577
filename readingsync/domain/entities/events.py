"""Canonical telemetry event contract shared by the device and the server."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .book import BookIdentity, clean_isbn


class EventType(str, Enum):
    """Kinds of telemetry events."""

    SESSION_START = "session_start"
    SESSION_END = "session_end"
    PAGE_TURN = "page_turn"


SESSION_EVENTS = frozenset({EventType.SESSION_START, EventType.SESSION_END})

# Largest value an integer column holds on every supported database.
MAX_INT = 2**31 - 1


class TelemetryEvent(BaseModel):
    """A single telemetry record.

    Page dwell samples and forward page-turn progress samples share this shape:
    a dwell carries ``duration``, a progress sample leaves it empty.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str
    author: Optional[str] = Field(default=None, validation_alias=AliasChoices("author", "authors"))
    isbn: Optional[str] = Field(default=None, max_length=32)
    md5: Optional[str] = Field(default=None, max_length=64)
    current_page: Optional[int] = Field(default=None, ge=0, le=MAX_INT)
    total_pages: Optional[int] = Field(default=None, ge=0, le=MAX_INT)
    progress: Optional[float] = Field(default=None, ge=0, le=100, description="Percent finished")
    session_id: Optional[str] = Field(default=None, max_length=64)
    event_type: EventType = EventType.PAGE_TURN
    timestamp: Optional[int] = Field(default=None, ge=0, le=MAX_INT, description="Event time, unix seconds")
    duration: Optional[int] = Field(default=None, ge=0, le=MAX_INT, description="Page dwell in seconds")

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title is required")
        return value

    @field_validator("author", mode="before")
    @classmethod
    def _join_authors(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v) for v in value if v)
        return value

    @field_validator("isbn", mode="before")
    @classmethod
    def _normalize_isbn(cls, value: Any) -> Any:
        if value is None:
            return None
        return clean_isbn(str(value))

    @model_validator(mode="after")
    def _required_by_kind(self) -> "TelemetryEvent":
        if self.event_type in SESSION_EVENTS and not self.session_id:
            raise ValueError(f"session_id is required for {self.event_type.value}")
        if self.event_type == EventType.PAGE_TURN and self.current_page is None:
            raise ValueError("current_page is required for page_turn")
        return self

    def identity(self) -> BookIdentity:
        return BookIdentity.build(self.title, self.author, self.isbn, self.md5)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict as sent over the wire and stored in the offline queue."""
        return self.model_dump(mode="json", exclude_none=True)


@dataclass
class ItemResult:
    """Outcome of one event within a request."""

    index: int
    ok: bool
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Outcome of an ingestion request."""

    items: list[ItemResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.items)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def failed(self) -> int:
        return self.processed - self.succeeded

    def to_response(self) -> dict[str, Any]:
        # Per-item results stay server side.
        return {
            "ok": True,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }
