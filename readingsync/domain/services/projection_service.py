"""Read-side projections over the state store."""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

import pytz

from ..entities.book import Book, BookSummary
from ..entities.page_telemetry import DailyActivity
from ..entities.projections import (
    ActivityHeatmap,
    BookDetail,
    BookList,
    BookListItem,
    BookStats,
    CurrentBook,
    SyncStateView,
)
from ..errors import NotFoundError, ValidationError
from ..interfaces.state_store import StateStore

logger = logging.getLogger(__name__)

RECENT_EVENTS_LIMIT = 100
MAX_HEATMAP_DAYS = 3660


def _current_fields(book: Book) -> dict:
    return {
        "id": book.key,
        "title": book.title,
        "author": book.authors,
        "cover_url": book.cover_url,
        "total_pages": book.pages,
        "current_page": book.latest_page,
        "progress_percent": book.progress_percent,
        "last_read_at": book.last_open,
    }


class ProjectionService:
    """Recomputes every read model per call from stored rows."""

    def __init__(self, store: StateStore, default_timezone: str = "UTC", clock: Callable[[], float] = time.time):
        self.store = store
        self.default_timezone = default_timezone
        self._clock = clock

    async def current_book(self) -> CurrentBook:
        book = await self.store.get_current_book()
        if book is None:
            raise NotFoundError("no book data yet")
        return CurrentBook(**_current_fields(book))

    async def list_books(self) -> BookList:
        summaries = await self.store.list_book_summaries()
        return BookList(books=[self._list_item(summary) for summary in summaries])

    async def book_detail(self, book_key: str) -> BookDetail:
        summary = await self.store.get_book_summary(book_key)
        if summary is None:
            raise NotFoundError("book not found")

        sessions = await self.store.list_sessions(summary.id)
        recent = await self.store.list_page_telemetry(summary.id, limit=RECENT_EVENTS_LIMIT)
        return BookDetail(
            **_current_fields(summary),
            created_at=summary.created_at,
            stats=BookStats(
                total_page_events=summary.total_page_events,
                total_read_pages=summary.total_read_pages,
                total_read_time=summary.total_read_time,
                first_read=summary.first_read,
                last_read=summary.last_read,
                total_sessions=len(sessions),
            ),
            sessions=sessions,
            recent_events=recent,
        )

    async def sync_state(self, book_key: str) -> SyncStateView:
        return SyncStateView(book_key=book_key, last_sync_time=await self.store.get_sync_time(book_key))

    async def activity(self, days: int = 365, timezone: Optional[str] = None) -> ActivityHeatmap:
        """Distinct pages and seconds read per local calendar day.

        Args:
            days: How far back to look.
            timezone: IANA zone name used for day boundaries.

        Raises:
            ValidationError: If ``days`` is out of range or the zone is unknown.
        """
        if not 1 <= days <= MAX_HEATMAP_DAYS:
            raise ValidationError(f"days must be between 1 and {MAX_HEATMAP_DAYS}")
        tzname = timezone or self.default_timezone
        try:
            tzinfo = pytz.timezone(tzname)
        except pytz.UnknownTimeZoneError:
            raise ValidationError(f"invalid tz: {tzname}") from None

        since = int(self._clock()) - days * 86400
        rows = await self.store.page_telemetry_since(since)
        logger.debug(f"Activity over {days} day(s) in {tzname}: {len(rows)} telemetry row(s)")

        pages: dict[str, set[tuple[int, int]]] = {}
        seconds: dict[str, int] = {}
        for row in rows:
            day = datetime.fromtimestamp(row.start_time, tzinfo).date().isoformat()
            pages.setdefault(day, set()).add((row.book_id, row.page))
            seconds[day] = seconds.get(day, 0) + (row.duration or 0)

        return ActivityHeatmap(
            timezone=tzname,
            days=[
                DailyActivity(date=day, pages=len(pages[day]), seconds=seconds[day])
                for day in sorted(pages)
            ],
        )

    @staticmethod
    def _list_item(summary: BookSummary) -> BookListItem:
        return BookListItem(
            **_current_fields(summary),
            total_reading_sessions=summary.total_sessions,
            total_pages_turned=summary.total_page_events,
            total_read_pages=summary.total_read_pages,
            total_read_time=summary.total_read_time,
            first_read=summary.first_read,
            last_read=summary.last_read,
        )
