"""Book entities for reading status sync."""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

_ISBN_NOISE = re.compile(r"[-\s]")


def clean_isbn(isbn: Optional[str]) -> Optional[str]:
    """Strip hyphens and whitespace from an ISBN. Empty results become None."""
    if not isbn:
        return None
    cleaned = _ISBN_NOISE.sub("", str(isbn))
    return cleaned or None


def _string_hash(value: str) -> int:
    """32-bit rolling hash (h * 31 + c) wrapped to a signed integer.

    Code points outside the BMP contribute their leading surrogate so keys match
    those generated by earlier deployments.
    """
    h = 0
    for ch in value:
        code = ord(ch)
        if code > 0xFFFF:
            code = 0xD800 + ((code - 0x10000) >> 10)
        h = (h * 31 + code) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def derive_book_key(
    title: Optional[str],
    author: Optional[str] = None,
    isbn: Optional[str] = None,
    md5: Optional[str] = None,
) -> str:
    """Derive the stable identity key of a book.

    Preference order: content hash of the source file, normalized ISBN, then a
    hash of ``title:author``.
    """
    if md5:
        return md5
    isbn = clean_isbn(isbn)
    if isbn:
        return isbn
    text = f"{title or ''}:{author or ''}".lower()
    return f"book_{abs(_string_hash(text)):x}"


class BookIdentity(BaseModel):
    """Identity material for a book as carried by an event."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(description="Stable identity key")
    title: str = Field(min_length=1)
    authors: Optional[str] = None
    isbn: Optional[str] = None
    md5: Optional[str] = None

    @classmethod
    def build(
        cls,
        title: str,
        authors: Optional[str] = None,
        isbn: Optional[str] = None,
        md5: Optional[str] = None,
    ) -> "BookIdentity":
        isbn = clean_isbn(isbn)
        return cls(
            key=derive_book_key(title, authors, isbn, md5),
            title=title,
            authors=authors,
            isbn=isbn,
            md5=md5,
        )


class Book(BaseModel):
    """Book row as held by the state store."""

    id: int
    key: str
    title: str
    authors: Optional[str] = None
    isbn: Optional[str] = None
    md5: Optional[str] = None
    pages: Optional[int] = Field(default=None, description="Total page count, refined as better data arrives")
    cover_url: Optional[str] = None
    cover_checked: bool = False
    total_read_time: int = 0
    total_read_pages: int = 0
    latest_page: Optional[int] = None
    progress_percent: Optional[float] = None
    latest_event_at: Optional[int] = None
    last_open: Optional[int] = Field(default=None, description="Receive time of the latest event")
    created_at: Optional[int] = None


class BookSummary(Book):
    """Book row joined with counts over its sessions and telemetry."""

    total_sessions: int = 0
    total_page_events: int = 0
    first_read: Optional[int] = None
    last_read: Optional[int] = None
