"""SQLAlchemy implementation of the State Store."""

import logging
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import case, distinct, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..domain.entities.book import Book, BookIdentity, BookSummary
from ..domain.entities.page_telemetry import PageTelemetry
from ..domain.entities.reading_session import ReadingSession, SessionEndOutcome, compute_pages_read
from ..domain.interfaces.state_store import StateStore
from .sql_models import Base, BookRow, PageStatRow, SessionRow, SyncStateRow

logger = logging.getLogger(__name__)

books = BookRow.__table__
sessions = SessionRow.__table__
page_stats = PageStatRow.__table__
sync_state = SyncStateRow.__table__


def _telemetry(row: Mapping[str, Any]) -> PageTelemetry:
    return PageTelemetry(
        book_id=row["id_book"],
        page=row["page"],
        start_time=row["start_time"],
        duration=row["duration"],
        total_pages=row["total_pages"],
        session_id=row["session_id"],
    )


class SqlStateStore(StateStore):
    """Relational state store.

    Each public method runs in its own short transaction. Replays and
    concurrent writers for the same book are made safe by insert-or-ignore on
    the unique keys, conditional updates, and recomputing aggregates in a
    single statement.
    """

    def __init__(self, database_url: str = "sqlite+aiosqlite:///./readingsync.db", engine: Optional[AsyncEngine] = None):
        """Initialize the store.

        Args:
            database_url: SQLAlchemy async URL. Ignored when ``engine`` is given.
            engine: Pre-built async engine.
        """
        self.database_url = database_url
        self._engine = engine or create_async_engine(database_url)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def dispose(self) -> None:
        await self._engine.dispose()

    def _insert(self, table):
        if self._engine.dialect.name == "postgresql":
            return pg_insert(table)
        return sqlite_insert(table)

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Schema ready on {self._engine.url.render_as_string(hide_password=True)}")

    # ===== Ingestion writes =====

    async def get_or_create_book(self, identity: BookIdentity, total_pages: Optional[int], now: int) -> tuple[Book, bool]:
        stmt = self._insert(books).values(
            key=identity.key,
            title=identity.title,
            authors=identity.authors,
            isbn=identity.isbn,
            md5=identity.md5,
            pages=total_pages or None,
            cover_checked=False,
            total_read_time=0,
            total_read_pages=0,
            created_at=now,
        ).on_conflict_do_nothing(index_elements=["key"])

        async with self._engine.begin() as conn:
            result = await conn.execute(stmt)
            created = result.rowcount == 1
            row = (await conn.execute(select(books).where(books.c.key == identity.key))).mappings().one()
        return Book(**row), created

    async def refine_book(self, book_id: int, identity: BookIdentity, total_pages: Optional[int]) -> None:
        values: dict[str, Any] = {}
        if identity.authors:
            values["authors"] = func.coalesce(books.c.authors, identity.authors)
        if identity.isbn:
            values["isbn"] = func.coalesce(books.c.isbn, identity.isbn)
        if identity.md5:
            values["md5"] = func.coalesce(books.c.md5, identity.md5)
        if total_pages:
            values["pages"] = total_pages
        if not values:
            return
        async with self._engine.begin() as conn:
            await conn.execute(update(books).where(books.c.id == book_id).values(**values))

    async def set_cover_url(self, book_id: int, cover_url: Optional[str]) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                update(books).where(books.c.id == book_id).values(cover_url=cover_url, cover_checked=True)
            )

    async def start_session(self, session_id: str, book_id: int, started_at: int, start_page: Optional[int]) -> bool:
        stmt = self._insert(sessions).values(
            id=session_id,
            book_id=book_id,
            started_at=started_at,
            start_page=start_page,
            pages_read=0,
        ).on_conflict_do_nothing(index_elements=["id"])

        async with self._engine.begin() as conn:
            if (await conn.execute(stmt)).rowcount == 1:
                return True

            existing = (await conn.execute(select(sessions).where(sessions.c.id == session_id))).mappings().one()
            if existing["book_id"] != book_id:
                logger.warning(
                    f"Session {session_id} start for book {book_id} ignored: "
                    f"session belongs to book {existing['book_id']}"
                )
                return False
            if existing["started_at"] is not None:
                return False

            # End arrived first; complete the row with its start.
            result = await conn.execute(
                update(sessions)
                .where(sessions.c.id == session_id, sessions.c.book_id == book_id, sessions.c.started_at.is_(None))
                .values(
                    started_at=started_at,
                    start_page=start_page,
                    pages_read=compute_pages_read(start_page, existing["end_page"]),
                )
            )
            return result.rowcount == 1

    async def end_session(self, session_id: str, book_id: int, ended_at: int, end_page: Optional[int]) -> SessionEndOutcome:
        async with self._engine.begin() as conn:
            existing = (await conn.execute(select(sessions).where(sessions.c.id == session_id))).mappings().first()
            if existing is None:
                stmt = self._insert(sessions).values(
                    id=session_id,
                    book_id=book_id,
                    ended_at=ended_at,
                    end_page=end_page,
                    pages_read=0,
                ).on_conflict_do_nothing(index_elements=["id"])
                if (await conn.execute(stmt)).rowcount == 1:
                    return SessionEndOutcome.END_ONLY
                existing = (await conn.execute(select(sessions).where(sessions.c.id == session_id))).mappings().one()

            if existing["book_id"] != book_id:
                logger.warning(
                    f"Session {session_id} end for book {book_id} ignored: "
                    f"session belongs to book {existing['book_id']}"
                )
                return SessionEndOutcome.OTHER_BOOK
            if existing["ended_at"] is not None:
                return SessionEndOutcome.DUPLICATE

            result = await conn.execute(
                update(sessions)
                .where(sessions.c.id == session_id, sessions.c.book_id == book_id, sessions.c.ended_at.is_(None))
                .values(
                    ended_at=ended_at,
                    end_page=end_page,
                    pages_read=compute_pages_read(existing["start_page"], end_page),
                )
            )
            return SessionEndOutcome.ENDED if result.rowcount == 1 else SessionEndOutcome.DUPLICATE

    async def insert_page_telemetry(self, rows: Sequence[PageTelemetry]) -> int:
        if not rows:
            return 0
        params = [
            {
                "id_book": row.book_id,
                "page": row.page,
                "start_time": row.start_time,
                "duration": row.duration,
                "total_pages": row.total_pages,
                "session_id": row.session_id,
            }
            for row in rows
        ]
        stmt = self._insert(page_stats).on_conflict_do_nothing(index_elements=["id_book", "page", "start_time"])
        async with self._engine.begin() as conn:
            result = await conn.execute(stmt, params)
        return max(result.rowcount, 0)

    async def advance_position(self, book_id: int, page: int, progress: Optional[float], event_time: int) -> bool:
        stmt = (
            update(books)
            .where(
                books.c.id == book_id,
                or_(books.c.latest_event_at.is_(None), books.c.latest_event_at <= event_time),
            )
            .values(
                latest_page=page,
                progress_percent=progress if progress is not None else books.c.progress_percent,
                latest_event_at=event_time,
            )
        )
        async with self._engine.begin() as conn:
            return (await conn.execute(stmt)).rowcount == 1

    async def recompute_aggregates(self, book_id: int) -> None:
        pages_read = (
            select(func.count(distinct(page_stats.c.page)))
            .where(page_stats.c.id_book == book_id)
            .scalar_subquery()
        )
        seconds_read = (
            select(func.coalesce(func.sum(page_stats.c.duration), 0))
            .where(page_stats.c.id_book == book_id)
            .scalar_subquery()
        )
        async with self._engine.begin() as conn:
            await conn.execute(
                update(books)
                .where(books.c.id == book_id)
                .values(total_read_pages=pages_read, total_read_time=seconds_read)
            )

    async def touch_last_open(self, book_id: int, received_at: int) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(update(books).where(books.c.id == book_id).values(last_open=received_at))

    async def record_sync_time(self, book_key: str, last_sync_time: int) -> None:
        stmt = self._insert(sync_state).values(book_key=book_key, last_sync_time=last_sync_time)
        stmt = stmt.on_conflict_do_update(
            index_elements=["book_key"],
            set_={
                "last_sync_time": case(
                    (stmt.excluded.last_sync_time > sync_state.c.last_sync_time, stmt.excluded.last_sync_time),
                    else_=sync_state.c.last_sync_time,
                )
            },
        )
        async with self._engine.begin() as conn:
            await conn.execute(stmt)

    # ===== Reads =====

    async def get_sync_time(self, book_key: str) -> int:
        async with self._engine.connect() as conn:
            value = (
                await conn.execute(select(sync_state.c.last_sync_time).where(sync_state.c.book_key == book_key))
            ).scalar_one_or_none()
        return value or 0

    async def get_book(self, book_key: str) -> Optional[Book]:
        async with self._engine.connect() as conn:
            row = (await conn.execute(select(books).where(books.c.key == book_key))).mappings().first()
        return Book(**row) if row else None

    async def get_current_book(self) -> Optional[Book]:
        stmt = (
            select(books)
            .where(books.c.last_open.is_not(None))
            .order_by(books.c.last_open.desc(), books.c.id.desc())
            .limit(1)
        )
        async with self._engine.connect() as conn:
            row = (await conn.execute(stmt)).mappings().first()
        return Book(**row) if row else None

    def _summary_select(self):
        total_sessions = (
            select(func.count()).select_from(sessions).where(sessions.c.book_id == books.c.id).scalar_subquery()
        )
        total_page_events = (
            select(func.count()).select_from(page_stats).where(page_stats.c.id_book == books.c.id).scalar_subquery()
        )
        first_read = select(func.min(page_stats.c.start_time)).where(page_stats.c.id_book == books.c.id).scalar_subquery()
        last_read = select(func.max(page_stats.c.start_time)).where(page_stats.c.id_book == books.c.id).scalar_subquery()
        return select(
            books,
            total_sessions.label("total_sessions"),
            total_page_events.label("total_page_events"),
            first_read.label("first_read"),
            last_read.label("last_read"),
        )

    async def list_book_summaries(self) -> list[BookSummary]:
        stmt = self._summary_select().order_by(books.c.last_open.desc().nulls_last(), books.c.id)
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [BookSummary(**row) for row in rows]

    async def get_book_summary(self, book_key: str) -> Optional[BookSummary]:
        stmt = self._summary_select().where(books.c.key == book_key)
        async with self._engine.connect() as conn:
            row = (await conn.execute(stmt)).mappings().first()
        return BookSummary(**row) if row else None

    async def list_sessions(self, book_id: int) -> list[ReadingSession]:
        stmt = (
            select(sessions)
            .where(sessions.c.book_id == book_id)
            .order_by(func.coalesce(sessions.c.started_at, sessions.c.ended_at).desc())
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [ReadingSession(**row) for row in rows]

    async def get_session(self, session_id: str) -> Optional[ReadingSession]:
        async with self._engine.connect() as conn:
            row = (await conn.execute(select(sessions).where(sessions.c.id == session_id))).mappings().first()
        return ReadingSession(**row) if row else None

    async def list_page_telemetry(self, book_id: int, limit: Optional[int] = None) -> list[PageTelemetry]:
        stmt = (
            select(page_stats)
            .where(page_stats.c.id_book == book_id)
            .order_by(page_stats.c.start_time.desc(), page_stats.c.page.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [_telemetry(row) for row in rows]

    async def page_telemetry_since(self, since: int) -> list[PageTelemetry]:
        stmt = select(page_stats).where(page_stats.c.start_time >= since).order_by(page_stats.c.start_time)
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [_telemetry(row) for row in rows]
