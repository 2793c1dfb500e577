"""Integration tests for ingestion against the SQL state store."""

import asyncio

import pytest

from readingsync.domain.entities import IngestPayload
from readingsync.domain.services import IngestionService
from readingsync.infrastructure.local_cover_resolver import LocalCoverResolver

T0 = 1_700_000_000


@pytest.fixture
def cover_resolver():
    return LocalCoverResolver({"dune": "https://covers.example/dune.jpg"})


@pytest.fixture
def service(store, cover_resolver, clock):
    return IngestionService(store, cover_resolver, clock=clock)


def session_batch(session_id="s-1"):
    base = {"title": "Dune", "author": "Frank Herbert", "total_pages": 412, "session_id": session_id}
    return [
        {**base, "event_type": "session_start", "current_page": 10, "timestamp": T0},
        {**base, "event_type": "page_turn", "current_page": 10, "timestamp": T0, "duration": 40},
        {**base, "event_type": "page_turn", "current_page": 11, "timestamp": T0 + 40, "duration": 55},
        {**base, "event_type": "page_turn", "current_page": 12, "timestamp": T0 + 95, "duration": 30},
        {**base, "event_type": "session_end", "current_page": 13, "timestamp": T0 + 125},
    ]


async def only_book(store):
    summaries = await store.list_book_summaries()
    assert len(summaries) == 1
    return summaries[0]


@pytest.mark.asyncio
async def test_replaying_a_batch_changes_nothing(service, store, clock):
    """Test at-least-once delivery of the same batch."""
    await service.ingest(IngestPayload(items=session_batch(), batched=True))
    first = await only_book(store)

    clock.advance(300)
    result = await service.ingest(IngestPayload(items=session_batch(), batched=True))
    second = await only_book(store)

    assert result.failed == 0
    assert (second.total_page_events, second.total_read_pages, second.total_read_time) == (3, 3, 125)
    assert (first.total_page_events, first.total_read_pages, first.total_read_time) == (3, 3, 125)
    assert second.total_sessions == 1
    session = (await store.list_sessions(second.id))[0]
    assert (session.start_page, session.end_page, session.pages_read) == (10, 13, 3)
    assert second.latest_page == 13
    assert first.last_open == T0
    assert second.last_open == T0 + 300


@pytest.mark.asyncio
async def test_book_identity_stable_without_isbn(service, store):
    """Test title/author identity across separate requests."""
    await service.ingest(IngestPayload(items=[{"title": "Dune", "author": "Frank Herbert", "current_page": 1, "timestamp": T0}]))
    await service.ingest(IngestPayload(items=[{"title": "Dune", "author": "Frank Herbert", "current_page": 2, "timestamp": T0 + 60}]))

    book = await only_book(store)
    assert book.key.startswith("book_")
    assert book.total_page_events == 2


@pytest.mark.asyncio
async def test_cover_looked_up_once(service, store, cover_resolver):
    await service.ingest(IngestPayload(items=[{"title": "Dune", "current_page": 1, "timestamp": T0}]))
    await service.ingest(IngestPayload(items=[{"title": "Dune", "current_page": 2, "timestamp": T0 + 60}]))

    assert len(cover_resolver.lookups) == 1
    assert (await only_book(store)).cover_url == "https://covers.example/dune.jpg"


@pytest.mark.asyncio
async def test_end_only_session_tolerated(service, store):
    await service.ingest(IngestPayload(items=[{
        "title": "Dune", "event_type": "session_end", "session_id": "lost-start",
        "current_page": 40, "timestamp": T0,
    }]))

    book = await only_book(store)
    [session] = await store.list_sessions(book.id)
    assert session.is_end_only
    assert session.pages_read == 0


@pytest.mark.asyncio
async def test_backwards_session_pages_read_is_zero(service, store):
    base = {"title": "Dune", "session_id": "s-2"}
    await service.ingest(IngestPayload(items=[
        {**base, "event_type": "session_start", "current_page": 50, "timestamp": T0},
        {**base, "event_type": "session_end", "current_page": 40, "timestamp": T0 + 60},
    ], batched=True))

    session = await store.get_session("s-2")
    assert session.pages_read == 0


@pytest.mark.asyncio
async def test_late_event_does_not_move_position_back(service, store):
    await service.ingest(IngestPayload(items=[{"title": "Dune", "current_page": 80, "timestamp": T0 + 1000, "total_pages": 400}]))
    await service.ingest(IngestPayload(items=[{"title": "Dune", "current_page": 20, "timestamp": T0}]))

    book = await only_book(store)
    assert (book.latest_page, book.progress_percent) == (80, 20.0)


@pytest.mark.asyncio
async def test_page_count_not_cleared(service, store):
    await service.ingest(IngestPayload(items=[{"title": "Dune", "current_page": 1, "timestamp": T0, "total_pages": 412}]))
    await service.ingest(IngestPayload(items=[{"title": "Dune", "current_page": 2, "timestamp": T0 + 5, "total_pages": 0}]))
    await service.ingest(IngestPayload(items=[{"title": "Dune", "current_page": 3, "timestamp": T0 + 9}]))

    assert (await only_book(store)).pages == 412


@pytest.mark.asyncio
async def test_page_stats_shape_records_sync_time(service, store):
    payload = IngestPayload(
        items=[
            {"event_type": "page_turn", "title": "Dune", "md5": "f00d", "current_page": 1, "timestamp": T0, "duration": 20},
        ],
        batched=True,
        book={"md5": "f00d", "title": "Dune"},
        last_sync_time=T0 + 20,
    )

    await service.ingest(payload)

    assert await store.get_sync_time("f00d") == T0 + 20
    assert (await only_book(store)).key == "f00d"


@pytest.mark.asyncio
async def test_concurrent_requests_for_one_book(service, store, cover_resolver):
    """Test that overlapping requests for the same book lose no aggregate updates."""
    requests = [
        IngestPayload(items=[{
            "title": "Dune",
            "author": "Frank Herbert",
            "current_page": page,
            "timestamp": T0 + page,
            "duration": 10,
        }])
        for page in range(20)
    ]

    await asyncio.gather(*(service.ingest(payload) for payload in requests))

    book = await only_book(store)
    assert (book.total_read_pages, book.total_read_time, book.total_page_events) == (20, 200, 20)
    assert book.latest_page == 19
    assert len(cover_resolver.lookups) == 1
