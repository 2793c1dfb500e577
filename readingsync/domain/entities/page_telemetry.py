"""Page telemetry entities."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PageTelemetry(BaseModel):
    """One recorded page dwell or forward page turn.

    ``(book_id, page, start_time)`` is unique in the store, which is what makes
    replaying a batch harmless.
    """

    model_config = ConfigDict(frozen=True)

    book_id: int
    page: int = Field(ge=0)
    start_time: int = Field(ge=0, description="Event time, unix seconds")
    duration: Optional[int] = Field(default=None, ge=0)
    total_pages: Optional[int] = Field(default=None, ge=0)
    session_id: Optional[str] = None


class DailyActivity(BaseModel):
    """Reading activity for one local calendar day."""

    date: str
    pages: int = 0
    seconds: int = 0
