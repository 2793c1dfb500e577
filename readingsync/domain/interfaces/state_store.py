"""State Store interface."""

from typing import Optional, Protocol, Sequence

from ..entities.book import Book, BookIdentity, BookSummary
from ..entities.page_telemetry import PageTelemetry
from ..entities.reading_session import ReadingSession, SessionEndOutcome


class StateStore(Protocol):
    """Protocol defining the persistent store behind ingestion and the read API.

    Every method is a self-contained write or read. Callers must not assume
    that a sequence of calls is atomic: replay safety comes from the
    uniqueness constraints and conditional updates each method applies.
    """

    async def create_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    async def get_or_create_book(self, identity: BookIdentity, total_pages: Optional[int], now: int) -> tuple[Book, bool]:
        """Resolve a book by identity key, inserting it when absent.

        Returns:
            tuple[Book, bool]: The stored book and whether this call created it.
        """
        ...

    async def refine_book(self, book_id: int, identity: BookIdentity, total_pages: Optional[int]) -> None:
        """Fill nullable attributes and replace the page count with a positive value.

        Never clears a stored value and never touches the cover.
        """
        ...

    async def set_cover_url(self, book_id: int, cover_url: Optional[str]) -> None:
        """Store the resolved cover and mark the lookup as done."""
        ...

    async def start_session(self, session_id: str, book_id: int, started_at: int, start_page: Optional[int]) -> bool:
        """Insert a session if absent or fill the start of an end-only row.

        Returns:
            bool: True when anything was written.
        """
        ...

    async def end_session(self, session_id: str, book_id: int, ended_at: int, end_page: Optional[int]) -> SessionEndOutcome:
        """Set the end fields of a session once."""
        ...

    async def insert_page_telemetry(self, rows: Sequence[PageTelemetry]) -> int:
        """Insert telemetry rows, ignoring ``(book, page, start_time)`` conflicts.

        Returns:
            int: Number of rows actually inserted.
        """
        ...

    async def advance_position(self, book_id: int, page: int, progress: Optional[float], event_time: int) -> bool:
        """Move the latest-position pointer if ``event_time`` is not older than the stored one."""
        ...

    async def recompute_aggregates(self, book_id: int) -> None:
        """Recompute cached pages-read and seconds-read from the full telemetry set."""
        ...

    async def touch_last_open(self, book_id: int, received_at: int) -> None:
        """Set the current-reading marker to the receive time."""
        ...

    async def record_sync_time(self, book_key: str, last_sync_time: int) -> None:
        """Store the client's last sync time for a book, keeping the maximum."""
        ...

    async def get_sync_time(self, book_key: str) -> int:
        ...

    async def get_book(self, book_key: str) -> Optional[Book]:
        ...

    async def get_current_book(self) -> Optional[Book]:
        """The book with the most recent ``last_open`` marker."""
        ...

    async def list_book_summaries(self) -> list[BookSummary]:
        """All books with counts, most recently opened first."""
        ...

    async def get_book_summary(self, book_key: str) -> Optional[BookSummary]:
        ...

    async def list_sessions(self, book_id: int) -> list[ReadingSession]:
        """Sessions of a book, newest first."""
        ...

    async def get_session(self, session_id: str) -> Optional[ReadingSession]:
        ...

    async def list_page_telemetry(self, book_id: int, limit: Optional[int] = None) -> list[PageTelemetry]:
        """Telemetry of a book, newest first."""
        ...

    async def page_telemetry_since(self, since: int) -> list[PageTelemetry]:
        """Telemetry of every book with ``start_time >= since``."""
        ...
