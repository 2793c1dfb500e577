"""Infrastructure layer components."""

from .local_cover_resolver import LocalCoverResolver
from .openlibrary_cover_resolver import OpenLibraryCoverResolver
from .sql_state_store import SqlStateStore

__all__ = [
    "LocalCoverResolver",
    "OpenLibraryCoverResolver",
    "SqlStateStore",
]
