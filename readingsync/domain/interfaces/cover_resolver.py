"""Cover resolver protocol."""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class CoverResolver(Protocol):
    """Protocol for looking up a cover image URL in an external catalog."""

    async def resolve(self, isbn: Optional[str], title: Optional[str], author: Optional[str]) -> Optional[str]:
        """Find a cover image URL for a book.

        Args:
            isbn: Normalized ISBN, if known.
            title: Book title.
            author: Author name(s).

        Returns:
            Optional[str]: Cover URL, or None when nothing was found or the
            lookup failed.
        """
        ...
