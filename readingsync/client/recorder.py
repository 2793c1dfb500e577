"""Device-side event recorder.

Turns reader lifecycle callbacks (book open, page turn, suspend, resume,
close) into canonical telemetry events and hands them to the offline queue.
"""

import logging
import time
import uuid
from typing import Callable, Optional, Protocol

from ..domain.entities.events import EventType
from .config import ClientSettings
from .offline_queue import DurableOfflineQueue
from .session_context import DocumentInfo, ReaderState, RecorderMode, SessionContext

logger = logging.getLogger(__name__)


class DeliveryTrigger(Protocol):
    def request_delivery(self, reason: str = "requested") -> None:
        ...


def new_session_id() -> str:
    return str(uuid.uuid4())


class EventRecorder:
    """
    Records reading telemetry for one device.

    In ``DWELL`` mode a page turn emits a ``page_turn`` for the page being
    left, stamped with when that page was opened and how long it stayed open,
    provided the dwell lies within ``[min_dwell, max_dwell]``. In
    ``PROGRESS`` mode a page turn emits a ``page_turn`` only when it passes
    the furthest page reached in this session.

    Handlers are synchronous; every record produced by a transition is queued
    before the handler returns.
    """

    def __init__(
        self,
        queue: DurableOfflineQueue,
        mode: RecorderMode = RecorderMode.DWELL,
        scheduler: Optional[DeliveryTrigger] = None,
        min_dwell: float = 5,
        max_dwell: float = 90,
        flush_every_pages: int = 10,
        clock: Callable[[], float] = time.time,
        session_id_factory: Callable[[], str] = new_session_id,
    ):
        self.queue = queue
        self.mode = RecorderMode(mode)
        self.scheduler = scheduler
        self.min_dwell = min_dwell
        self.max_dwell = max_dwell
        self.flush_every_pages = flush_every_pages
        self._clock = clock
        self._session_id_factory = session_id_factory
        self._context: Optional[SessionContext] = None

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        queue: DurableOfflineQueue,
        scheduler: Optional[DeliveryTrigger] = None,
    ) -> "EventRecorder":
        return cls(
            queue,
            mode=settings.recorder_mode,
            scheduler=scheduler,
            min_dwell=settings.min_dwell,
            max_dwell=settings.max_dwell,
            flush_every_pages=settings.flush_every_pages,
        )

    @property
    def context(self) -> Optional[SessionContext]:
        return self._context

    @property
    def state(self) -> ReaderState:
        return self._context.state if self._context else ReaderState.CLOSED

    def on_book_open(self, document: DocumentInfo, page: int) -> str:
        """Start a session on ``page``. Returns the new session id."""
        if self._context is not None:
            logger.info(f"Book opened while session {self._context.session_id} was open, closing it")
            self.on_book_close()

        now = self._clock()
        context = SessionContext(
            session_id=self._session_id_factory(),
            document=document,
            current_page=page,
            page_started_at=now,
            max_page_reached=page,
        )
        context.record(EventType.SESSION_START, page, now)
        self._context = context
        logger.debug(f"Session {context.session_id} started on page {page} of '{document.title}'")
        self._commit(context)
        return context.session_id

    def on_page_turn(self, page: int, progress: Optional[float] = None) -> None:
        context = self._context
        if context is None:
            logger.debug(f"Page turn to {page} with no open book ignored")
            return

        now = self._clock()
        if context.state == ReaderState.SUSPENDED:
            context.state = ReaderState.READING

        if self.mode == RecorderMode.DWELL:
            self._record_dwell(context, now)
            forward = page > context.current_page
        else:
            forward = page > context.max_page_reached
            if forward:
                context.max_page_reached = page
                context.record(EventType.PAGE_TURN, page, now, progress=progress)

        context.current_page = page
        context.page_started_at = now

        reason = None
        if forward:
            context.forward_turns += 1
            if context.forward_turns >= self.flush_every_pages:
                context.forward_turns = 0
                reason = "pages"
        self._commit(context, reason)

    def on_book_close(self, progress: Optional[float] = None) -> None:
        context = self._context
        if context is None:
            return

        now = self._clock()
        if self.mode == RecorderMode.DWELL:
            self._record_dwell(context, now)
        context.record(EventType.SESSION_END, context.current_page, now, progress=progress)
        self._context = None
        logger.debug(f"Session {context.session_id} ended on page {context.current_page}")
        self._commit(context, "close")

    def on_suspend(self) -> None:
        """Device going to sleep: keep the session, stop the page timer."""
        context = self._context
        if context is None or context.state == ReaderState.SUSPENDED:
            return

        if self.mode == RecorderMode.DWELL:
            self._record_dwell(context, self._clock())
        context.page_started_at = None
        context.state = ReaderState.SUSPENDED
        self._commit(context, "suspend")

    def on_resume(self) -> None:
        context = self._context
        if context is None or context.state != ReaderState.SUSPENDED:
            return
        context.state = ReaderState.READING
        context.page_started_at = self._clock()

    def _record_dwell(self, context: SessionContext, now: float) -> None:
        if context.page_started_at is None:
            return
        elapsed = now - context.page_started_at
        if not self.min_dwell <= elapsed <= self.max_dwell:
            logger.debug(f"Dwell of {elapsed:.1f}s on page {context.current_page} dropped")
            return
        context.record(
            EventType.PAGE_TURN,
            context.current_page,
            context.page_started_at,
            duration=int(round(elapsed)),
        )

    def _commit(self, context: SessionContext, reason: Optional[str] = None) -> None:
        for event in context.take_pending():
            self.queue.enqueue(event.to_wire())
        if reason and self.scheduler is not None:
            self.scheduler.request_delivery(reason)
