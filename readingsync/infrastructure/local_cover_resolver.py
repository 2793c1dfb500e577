"""In-memory implementation of CoverResolver."""

from typing import Dict, List, Optional, Tuple

from ..domain.interfaces.cover_resolver import CoverResolver


class LocalCoverResolver(CoverResolver):
    """Local implementation of the CoverResolver protocol.
    
    Answers from a dictionary keyed by ISBN or lower-cased title, and records
    every lookup. Useful for testing and for running without network access.
    """
    
    def __init__(self, covers: Optional[Dict[str, str]] = None):
        """Initialize the local cover resolver.
        
        Args:
            covers: Mapping of ISBN or lower-cased title to cover URL.
        """
        self._covers: Dict[str, str] = dict(covers or {})
        self.lookups: List[Tuple[Optional[str], str, Optional[str]]] = []
    
    def add_cover(self, key: str, cover_url: str) -> None:
        self._covers[key] = cover_url
    
    async def resolve(self, isbn: Optional[str], title: str, author: Optional[str]) -> Optional[str]:
        self.lookups.append((isbn, title, author))
        if isbn and isbn in self._covers:
            return self._covers[isbn]
        return self._covers.get(title.lower())
