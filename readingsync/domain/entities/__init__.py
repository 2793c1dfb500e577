"""Domain entities for reading status sync."""

from .book import Book, BookIdentity, BookSummary, clean_isbn, derive_book_key
from .decoding import DecodeError, DecodeResult, IngestPayload, Ok, decode_event, decode_payload
from .events import BatchResult, EventType, ItemResult, TelemetryEvent
from .page_telemetry import DailyActivity, PageTelemetry
from .projections import (
    ActivityHeatmap,
    BookDetail,
    BookList,
    BookListItem,
    BookStats,
    CurrentBook,
    SyncStateView,
)
from .reading_session import ReadingSession, SessionEndOutcome, compute_pages_read

__all__ = [
    # Book entities
    "Book",
    "BookIdentity",
    "BookSummary",
    "clean_isbn",
    "derive_book_key",
    # Event entities
    "EventType",
    "TelemetryEvent",
    "ItemResult",
    "BatchResult",
    # Decoding
    "Ok",
    "DecodeError",
    "DecodeResult",
    "IngestPayload",
    "decode_event",
    "decode_payload",
    # Session entities
    "ReadingSession",
    "SessionEndOutcome",
    "compute_pages_read",
    # Telemetry entities
    "PageTelemetry",
    "DailyActivity",
    # Projections
    "CurrentBook",
    "BookListItem",
    "BookList",
    "BookStats",
    "BookDetail",
    "ActivityHeatmap",
    "SyncStateView",
]
