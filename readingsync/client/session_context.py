"""Per-session state of the device-side recorder."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..domain.entities.events import EventType, TelemetryEvent


class RecorderMode(str, Enum):
    """How page turns are turned into telemetry."""

    DWELL = "dwell"  # time spent on each page
    PROGRESS = "progress"  # forward-only page progress


class ReaderState(str, Enum):
    """Reading state of the device."""

    CLOSED = "closed"
    READING = "reading"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class DocumentInfo:
    """Identity of the open document as reported by the reader."""

    title: str
    author: Optional[str] = None
    isbn: Optional[str] = None
    md5: Optional[str] = None
    total_pages: Optional[int] = None


@dataclass
class SessionContext:
    """Everything the recorder knows about one open book.

    Created on book-open and discarded on book-close.
    """

    session_id: str
    document: DocumentInfo
    current_page: int
    page_started_at: Optional[float]
    max_page_reached: int
    state: ReaderState = ReaderState.READING
    pending: list[TelemetryEvent] = field(default_factory=list)
    forward_turns: int = 0

    def record(
        self,
        event_type: EventType,
        page: int,
        timestamp: float,
        duration: Optional[int] = None,
        progress: Optional[float] = None,
    ) -> TelemetryEvent:
        event = TelemetryEvent(
            title=self.document.title,
            author=self.document.author,
            isbn=self.document.isbn,
            md5=self.document.md5,
            total_pages=self.document.total_pages,
            current_page=page,
            progress=progress,
            session_id=self.session_id,
            event_type=event_type,
            timestamp=int(timestamp),
            duration=duration,
        )
        self.pending.append(event)
        return event

    def take_pending(self) -> list[TelemetryEvent]:
        pending, self.pending = self.pending, []
        return pending
