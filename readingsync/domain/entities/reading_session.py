"""Session entities for reading status sync."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def compute_pages_read(start_page: Optional[int], end_page: Optional[int]) -> int:
    """Pages advanced during a session, clamped at zero.

    Without a known start page (end-only session) nothing can be attributed.
    """
    if start_page is None or end_page is None:
        return 0
    return max(0, end_page - start_page)


class ReadingSession(BaseModel):
    """One open-to-close (or open-to-suspend) reading interval."""

    id: str = Field(description="Client generated, opaque session id")
    book_id: int
    started_at: Optional[int] = None
    ended_at: Optional[int] = None
    start_page: Optional[int] = None
    end_page: Optional[int] = None
    pages_read: int = Field(default=0, ge=0)

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @property
    def is_end_only(self) -> bool:
        return self.started_at is None and self.ended_at is not None

    class Config:
        """Pydantic model configuration."""

        json_schema_extra = {
            "example": {
                "id": "3f1c0a52-8e0b-4c1e-9a57-6b0f2f3f9d11",
                "book_id": 1,
                "started_at": 1767258000,
                "ended_at": 1767259800,
                "start_page": 40,
                "end_page": 52,
                "pages_read": 12,
            }
        }


class SessionEndOutcome(str, Enum):
    """What recording a session end did to the store."""

    ENDED = "ended"
    END_ONLY = "end_only"
    DUPLICATE = "duplicate"
    OTHER_BOOK = "other_book"  # id belongs to a session of another book
