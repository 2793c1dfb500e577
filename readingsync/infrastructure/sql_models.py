"""Relational layout of the state store."""

from typing import Optional

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class BookRow(Base):
    __tablename__ = "book"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    authors: Mapped[Optional[str]] = mapped_column(Text)
    isbn: Mapped[Optional[str]] = mapped_column(String(32))
    md5: Mapped[Optional[str]] = mapped_column(String(64))
    pages: Mapped[Optional[int]] = mapped_column(Integer)
    cover_url: Mapped[Optional[str]] = mapped_column(Text)
    cover_checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Cached over page_stat_data.
    total_read_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_read_pages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    latest_page: Mapped[Optional[int]] = mapped_column(Integer)
    progress_percent: Mapped[Optional[float]] = mapped_column(Float)
    latest_event_at: Mapped[Optional[int]] = mapped_column(Integer)
    last_open: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[Optional[int]] = mapped_column(Integer)


class SessionRow(Base):
    __tablename__ = "reading_session"
    __table_args__ = (
        Index("idx_reading_session_book", "book_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("book.id"), nullable=False)
    started_at: Mapped[Optional[int]] = mapped_column(Integer)
    ended_at: Mapped[Optional[int]] = mapped_column(Integer)
    start_page: Mapped[Optional[int]] = mapped_column(Integer)
    end_page: Mapped[Optional[int]] = mapped_column(Integer)
    pages_read: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PageStatRow(Base):
    __tablename__ = "page_stat_data"
    __table_args__ = (
        UniqueConstraint("id_book", "page", "start_time", name="uq_page_stat_book_page_time"),
        Index("idx_page_stat_book", "id_book"),
        Index("idx_page_stat_time", "start_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id_book: Mapped[int] = mapped_column(ForeignKey("book.id"), nullable=False)
    page: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration: Mapped[Optional[int]] = mapped_column(Integer)
    total_pages: Mapped[Optional[int]] = mapped_column(Integer)
    session_id: Mapped[Optional[str]] = mapped_column(String(64))


class SyncStateRow(Base):
    __tablename__ = "sync_state"

    book_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    last_sync_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
