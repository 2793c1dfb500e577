"""Domain interfaces for reading status sync."""

from .cover_resolver import CoverResolver
from .state_store import StateStore

__all__ = ["CoverResolver", "StateStore"]
