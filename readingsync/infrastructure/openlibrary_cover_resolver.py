"""OpenLibrary cover lookup."""

import logging
from typing import Optional

import httpx

from ..domain.interfaces.cover_resolver import CoverResolver

logger = logging.getLogger(__name__)

COVERS_BASE_URL = "https://covers.openlibrary.org"
SEARCH_URL = "https://openlibrary.org/search.json"


class OpenLibraryCoverResolver(CoverResolver):
    """Resolve cover URLs against OpenLibrary.

    An ISBN is probed directly on the covers host first; otherwise the first
    search hit for title and author is used. Any failure yields ``None`` so a
    missing cover never fails ingestion.
    """

    def __init__(self, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    async def resolve(self, isbn: Optional[str], title: str, author: Optional[str]) -> Optional[str]:
        try:
            if self._client is not None:
                return await self._lookup(self._client, isbn, title, author)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await self._lookup(client, isbn, title, author)
        except httpx.HTTPError as e:
            logger.warning(f"Cover lookup failed for '{title}': {e}")
            return None
        except ValueError as e:
            logger.warning(f"Cover search for '{title}' returned an unreadable body: {e}")
            return None

    async def _lookup(
        self, client: httpx.AsyncClient, isbn: Optional[str], title: str, author: Optional[str]
    ) -> Optional[str]:
        if isbn:
            url = f"{COVERS_BASE_URL}/b/isbn/{isbn}-M.jpg"
            response = await client.head(url, params={"default": "false"})
            if response.status_code in (200, 302):
                return url

        params = {"title": title, "limit": 1}
        if author:
            params["author"] = author
        response = await client.get(SEARCH_URL, params=params)
        if response.status_code != 200:
            logger.info(f"Cover search for '{title}' returned {response.status_code}")
            return None

        body = response.json()
        docs = body.get("docs") if isinstance(body, dict) else None
        first = docs[0] if isinstance(docs, list) and docs else None
        cover_id = first.get("cover_i") if isinstance(first, dict) else None
        if not cover_id or not isinstance(cover_id, (int, str)):
            return None
        return f"{COVERS_BASE_URL}/b/id/{cover_id}-M.jpg"
