"""Reading status controller coordinating ingestion and read models."""

import logging
from typing import Optional, Union

from ..domain.entities import (
    ActivityHeatmap,
    BookDetail,
    BookList,
    CurrentBook,
    DecodeError,
    SyncStateView,
    decode_payload,
)
from ..domain.errors import ValidationError
from ..domain.interfaces.cover_resolver import CoverResolver
from ..domain.interfaces.state_store import StateStore
from ..domain.services import IngestionService, ProjectionService

logger = logging.getLogger(__name__)


class ReadingStatusController:
    """
    Controller for reading status operations.

    This controller is injected with the state store and cover resolver and
    handles the work behind each endpoint, keeping the API layer thin.
    """

    def __init__(
        self,
        state_store: StateStore,
        cover_resolver: Optional[CoverResolver] = None,
        heatmap_timezone: str = "UTC",
    ):
        """
        Initialize the controller with injected dependencies.

        Args:
            state_store: Durable store for books, sessions and telemetry
            cover_resolver: Optional cover lookup used when a book is created
            heatmap_timezone: Default zone for activity day boundaries
        """
        self.state_store = state_store
        self.cover_resolver = cover_resolver
        self.ingestion = IngestionService(state_store, cover_resolver)
        self.projections = ProjectionService(state_store, default_timezone=heatmap_timezone)

        logger.info("ReadingStatusController initialized with providers")

    async def startup(self) -> None:
        await self.state_store.create_schema()

    async def ingest(self, body: Union[bytes, str]) -> dict:
        """
        Decode and ingest a request body.

        Returns:
            ``{"ok": true}`` for a single event, the batch counts otherwise.

        Raises:
            ValidationError: If the body cannot be decoded, or a single event
                is invalid.
        """
        decoded = decode_payload(body)
        if isinstance(decoded, DecodeError):
            raise ValidationError(decoded.reason)

        payload = decoded.value
        result = await self.ingestion.ingest(payload)
        if not payload.batched:
            return {"ok": True}
        return result.to_response()

    async def get_current_book(self) -> CurrentBook:
        return await self.projections.current_book()

    async def list_books(self) -> BookList:
        return await self.projections.list_books()

    async def get_book(self, book_key: str) -> BookDetail:
        return await self.projections.book_detail(book_key)

    async def get_sync_state(self, book_key: str) -> SyncStateView:
        return await self.projections.sync_state(book_key)

    async def get_activity(self, days: int, timezone: Optional[str]) -> ActivityHeatmap:
        return await self.projections.activity(days=days, timezone=timezone)

    def get_health_status(self) -> dict:
        """
        Get application health status.

        Returns:
            Dict containing health status information
        """
        return {
            "status": "healthy",
            "providers": {
                "state_store": type(self.state_store).__name__,
                "cover_resolver": type(self.cover_resolver).__name__ if self.cover_resolver else None,
            },
        }
