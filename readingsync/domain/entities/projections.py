"""Response shapes for the read API.

These are plain projections of stored rows; nothing here is cached.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .page_telemetry import DailyActivity, PageTelemetry
from .reading_session import ReadingSession


class CurrentBook(BaseModel):
    id: str
    title: str
    author: Optional[str] = None
    cover_url: Optional[str] = None
    total_pages: Optional[int] = None
    current_page: Optional[int] = None
    progress_percent: Optional[float] = None
    last_read_at: Optional[int] = None


class BookListItem(CurrentBook):
    total_reading_sessions: int = 0
    total_pages_turned: int = 0
    total_read_pages: int = 0
    total_read_time: int = 0
    first_read: Optional[int] = None
    last_read: Optional[int] = None


class BookStats(BaseModel):
    total_page_events: int = 0
    total_read_pages: int = 0
    total_read_time: int = 0
    first_read: Optional[int] = None
    last_read: Optional[int] = None
    total_sessions: int = 0


class BookDetail(CurrentBook):
    created_at: Optional[int] = None
    stats: BookStats = Field(default_factory=BookStats)
    sessions: list[ReadingSession] = Field(default_factory=list)
    recent_events: list[PageTelemetry] = Field(default_factory=list)


class BookList(BaseModel):
    books: list[BookListItem] = Field(default_factory=list)


class ActivityHeatmap(BaseModel):
    timezone: str
    days: list[DailyActivity] = Field(default_factory=list)


class SyncStateView(BaseModel):
    book_key: str
    last_sync_time: int = 0
