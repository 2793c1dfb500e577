"""Domain services for reading status sync."""

from .ingestion_service import IngestionService
from .projection_service import ProjectionService

__all__ = ["IngestionService", "ProjectionService"]
