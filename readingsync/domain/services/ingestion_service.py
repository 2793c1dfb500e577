"""Ingestion engine turning telemetry events into book, session and page state."""

import logging
import time
from typing import Callable, Optional

from ..entities.book import Book, BookIdentity, derive_book_key
from ..entities.decoding import DecodeError, IngestPayload, decode_event
from ..entities.events import BatchResult, EventType, ItemResult, TelemetryEvent
from ..entities.page_telemetry import PageTelemetry
from ..entities.reading_session import SessionEndOutcome
from ..errors import ValidationError
from ..interfaces.cover_resolver import CoverResolver
from ..interfaces.state_store import StateStore

logger = logging.getLogger(__name__)

IndexedEvent = tuple[int, TelemetryEvent]


def derive_progress(page: Optional[int], total_pages: Optional[int]) -> Optional[float]:
    """Percent finished from a page position, when the page count is known."""
    if page is None or not total_pages:
        return None
    return round(min(100.0, page * 100.0 / total_pages), 1)


class IngestionService:
    """
    Stateless ingestion engine.

    For every request it:
    - validates each event against the canonical contract
    - resolves or creates the book by identity key (cover looked up once, at creation)
    - applies session starts/ends and page telemetry with replay-safe writes
    - moves the latest-position pointer, recomputes cached aggregates and
      sets the current-reading marker to the receive time

    Nothing wraps a request in a transaction. Each store call commits on its
    own, so an interrupted request can leave a refined book without its
    telemetry; a replay of the same batch completes it.
    """

    def __init__(
        self,
        store: StateStore,
        cover_resolver: Optional[CoverResolver] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.cover_resolver = cover_resolver
        self._clock = clock

    async def ingest(self, payload: IngestPayload) -> BatchResult:
        """Ingest a decoded request body.

        Raises:
            ValidationError: If the payload is a single event that fails
                validation. Invalid items of a batch are reported as failed.
        """
        received_at = int(self._clock())
        result = BatchResult()

        groups: dict[str, list[IndexedEvent]] = {}
        for index, item in enumerate(payload.items):
            decoded = decode_event(item)
            if isinstance(decoded, DecodeError):
                if not payload.batched:
                    raise ValidationError(decoded.reason)
                logger.warning(f"Rejected event {index} of batch: {decoded.reason}")
                result.items.append(ItemResult(index=index, ok=False, error=decoded.reason))
                continue
            event = decoded.value
            groups.setdefault(event.identity().key, []).append((index, event))

        for book_key, events in groups.items():
            result.items.extend(await self._ingest_book(book_key, events, received_at, payload.batched))

        if payload.book is not None and payload.last_sync_time is not None:
            book_key = self._payload_book_key(payload.book)
            await self.store.record_sync_time(book_key, payload.last_sync_time)

        result.items.sort(key=lambda item: item.index)
        if result.failed:
            logger.warning(
                f"Batch processed with failures: {result.succeeded}/{result.processed} succeeded, "
                f"failed items: {[(item.index, item.error) for item in result.items if not item.ok]}"
            )
        else:
            logger.info(f"Ingested {result.processed} event(s) for {len(groups)} book(s)")
        return result

    async def _ingest_book(
        self,
        book_key: str,
        events: list[IndexedEvent],
        received_at: int,
        batched: bool,
    ) -> list[ItemResult]:
        identity = self._merge_identity(book_key, [event for _, event in events])
        total_pages = self._latest_total_pages(events, received_at)

        book, created = await self.store.get_or_create_book(identity, total_pages, received_at)
        if created:
            logger.info(f"Created book {book.key} ({book.title})")
            await self._resolve_cover(book, identity)
        else:
            await self.store.refine_book(book.id, identity, total_pages)

        outcomes: dict[int, ItemResult] = {}
        page_rows: list[PageTelemetry] = []
        page_indexes: list[int] = []

        for index, event in events:
            timestamp = self._event_time(event, received_at)
            try:
                if event.event_type == EventType.SESSION_START:
                    await self.store.start_session(event.session_id, book.id, timestamp, event.current_page)
                elif event.event_type == EventType.SESSION_END:
                    outcome = await self.store.end_session(event.session_id, book.id, timestamp, event.current_page)
                    if outcome == SessionEndOutcome.END_ONLY:
                        logger.info(f"Session {event.session_id} ended without a recorded start")
                else:
                    page_rows.append(PageTelemetry(
                        book_id=book.id,
                        page=event.current_page,
                        start_time=timestamp,
                        duration=event.duration,
                        total_pages=event.total_pages,
                        session_id=event.session_id,
                    ))
                    page_indexes.append(index)
                    continue
            except Exception as e:
                if not batched:
                    raise
                logger.error(f"Failed to apply event {index} for book {book.key}: {e}", exc_info=True)
                outcomes[index] = ItemResult(index=index, ok=False, error=str(e))
                continue
            outcomes[index] = ItemResult(index=index, ok=True)

        if page_rows:
            outcomes.update(await self._store_page_rows(book, page_rows, page_indexes, batched))
            await self.store.recompute_aggregates(book.id)

        stored = [(index, event) for index, event in events if outcomes[index].ok]
        latest = self._latest_positioned(stored, received_at)
        if latest is not None:
            progress = latest.progress
            if progress is None:
                progress = derive_progress(latest.current_page, latest.total_pages or total_pages or book.pages)
            await self.store.advance_position(
                book.id, latest.current_page, progress, self._event_time(latest, received_at)
            )

        await self.store.touch_last_open(book.id, received_at)
        return list(outcomes.values())

    async def _store_page_rows(
        self,
        book: Book,
        rows: list[PageTelemetry],
        indexes: list[int],
        batched: bool,
    ) -> dict[int, ItemResult]:
        """Insert page rows in one statement, falling back to one row at a time.

        The fallback keeps a row the store refuses from failing its siblings.
        """
        try:
            inserted = await self.store.insert_page_telemetry(rows)
            logger.debug(f"Book {book.key}: {inserted} new of {len(rows)} page rows")
            return {index: ItemResult(index=index, ok=True) for index in indexes}
        except Exception as e:
            if not batched:
                raise
            logger.warning(f"Bulk insert of {len(rows)} page rows for book {book.key} failed, retrying per row: {e}")

        outcomes: dict[int, ItemResult] = {}
        for index, row in zip(indexes, rows):
            try:
                await self.store.insert_page_telemetry([row])
            except Exception as e:
                logger.error(f"Failed to store page {row.page} of book {book.key} (event {index}): {e}", exc_info=True)
                outcomes[index] = ItemResult(index=index, ok=False, error=str(e))
                continue
            outcomes[index] = ItemResult(index=index, ok=True)
        return outcomes

    @staticmethod
    def _payload_book_key(book: dict) -> str:
        authors = book.get("authors") or book.get("author")
        if isinstance(authors, (list, tuple)):
            authors = ", ".join(str(a) for a in authors if a)
        title = book.get("title")
        return derive_book_key(
            title.strip() if isinstance(title, str) else title,
            authors,
            book.get("isbn"),
            book.get("md5") or book.get("identity"),
        )

    async def _resolve_cover(self, book: Book, identity: BookIdentity) -> None:
        if self.cover_resolver is None:
            return
        try:
            cover_url = await self.cover_resolver.resolve(identity.isbn, identity.title, identity.authors)
        except Exception as e:
            # Recorded as checked; the lookup is not repeated for this book.
            logger.warning(f"Cover lookup for {book.key} failed: {e}", exc_info=True)
            cover_url = None
        await self.store.set_cover_url(book.id, cover_url)
        logger.info(f"Cover for {book.key}: {cover_url or 'not found'}")

    @staticmethod
    def _event_time(event: TelemetryEvent, received_at: int) -> int:
        # Events without a client timestamp are stamped on receipt.
        return event.timestamp if event.timestamp is not None else received_at

    @staticmethod
    def _merge_identity(book_key: str, events: list[TelemetryEvent]) -> BookIdentity:
        first = events[0]
        return BookIdentity(
            key=book_key,
            title=first.title,
            authors=next((e.author for e in events if e.author), None),
            isbn=next((e.isbn for e in events if e.isbn), None),
            md5=next((e.md5 for e in events if e.md5), None),
        )

    def _latest_total_pages(self, events: list[IndexedEvent], received_at: int) -> Optional[int]:
        candidates = [event for _, event in events if event.total_pages]
        if not candidates:
            return None
        return max(reversed(candidates), key=lambda e: self._event_time(e, received_at)).total_pages

    def _latest_positioned(self, events: list[IndexedEvent], received_at: int) -> Optional[TelemetryEvent]:
        candidates = [event for _, event in events if event.current_page is not None]
        if not candidates:
            return None
        return max(reversed(candidates), key=lambda e: self._event_time(e, received_at))
