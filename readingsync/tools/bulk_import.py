#!/usr/bin/env python3
"""
Bulk Import
Replay a KOReader statistics.sqlite3 database into the reading status service
through /sync-stats, one request per book.
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx
from sqlalchemy import create_engine, text

from ..client.config import ClientSettings

logger = logging.getLogger(__name__)

BOOKS_QUERY = text("""
    SELECT b.id, b.title, b.authors, b.md5,
           (SELECT total_pages FROM page_stat_data
            WHERE id_book = b.id ORDER BY start_time DESC LIMIT 1) AS pages
    FROM book b
    WHERE b.md5 IS NOT NULL
      AND b.authors IS NOT NULL
      AND b.authors != ''
      AND b.authors != 'N/A'
      AND EXISTS (SELECT 1 FROM page_stat_data p WHERE p.id_book = b.id)
    ORDER BY b.id
""")

PAGE_STATS_QUERY = text("""
    SELECT page, start_time, duration, total_pages
    FROM page_stat_data
    WHERE id_book = :book_id
    ORDER BY start_time
""")


def normalize_endpoint(endpoint: str) -> str:
    """Point a configured events endpoint at /sync-stats."""
    endpoint = endpoint.rstrip("/")
    for suffix in ("/events", "/sync_stats"):
        if endpoint.endswith(suffix):
            endpoint = endpoint[: -len(suffix)]
            break
    if not endpoint.endswith("/sync-stats"):
        endpoint = f"{endpoint}/sync-stats"
    return endpoint


class KOReaderStatsReader:
    """Reads books and page stats from a KOReader statistics database."""

    def __init__(self, db_path: str):
        if not Path(db_path).is_file():
            raise FileNotFoundError(f"Database file not found: {db_path}")
        self.engine = create_engine(f"sqlite:///{Path(db_path).resolve()}")

    def books(self) -> list[dict[str, Any]]:
        """Books with an md5, a real author and at least one page stat."""
        with self.engine.connect() as conn:
            return [dict(row) for row in conn.execute(BOOKS_QUERY).mappings()]

    def page_stats(self, book_id: int) -> list[dict[str, Any]]:
        with self.engine.connect() as conn:
            return [dict(row) for row in conn.execute(PAGE_STATS_QUERY, {"book_id": book_id}).mappings()]

    def close(self) -> None:
        self.engine.dispose()


def build_payload(book: dict[str, Any], page_stats: list[dict[str, Any]]) -> dict[str, Any]:
    pages = book.get("pages")
    payload: dict[str, Any] = {
        "book": {
            "md5": book["md5"],
            "title": book["title"],
            "authors": book["authors"],
            "pages": int(pages) if pages else None,
        },
        "page_stats": page_stats,
    }
    if page_stats:
        payload["last_sync_time"] = max(stat["start_time"] for stat in page_stats)
    return payload


@dataclass
class ImportSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0


class BulkImporter:
    """Posts one batched request per book. Safe to re-run: ingestion is idempotent."""

    def __init__(self, endpoint: str, auth_token: Optional[str], client: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.endpoint = normalize_endpoint(endpoint)
        self.auth_token = auth_token
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def import_book(self, payload: dict[str, Any]) -> Optional[str]:
        """Send one book. Returns an error message, or None on success."""
        headers = {"Authorization": f"Bearer {self.auth_token}"} if self.auth_token else {}
        try:
            response = self._client.post(self.endpoint, json=payload, headers=headers)
        except httpx.HTTPError as e:
            return str(e) or type(e).__name__
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code == 200 and isinstance(body, dict) and body.get("ok"):
            if body.get("failed"):
                return f"{body['failed']} of {body.get('processed')} page stats rejected"
            return None
        if isinstance(body, dict) and body.get("error"):
            return body["error"]
        return f"HTTP {response.status_code}"

    def run(self, reader: KOReaderStatsReader, dry_run: bool = False) -> ImportSummary:
        summary = ImportSummary()
        books = reader.books()
        if not books:
            print("No books with page stats found in database")
            return summary

        print(f"Found {len(books)} books to migrate\n")
        for book in books:
            stats = reader.page_stats(book["id"])
            payload = build_payload(book, stats)
            summary.total += 1
            label = f"{book['title']} ({len(stats)} page events)"

            if dry_run:
                print(f"Would migrate: {label}")
                summary.succeeded += 1
                continue

            error = self.import_book(payload)
            if error is None:
                print(f"Migrating: {label}... OK")
                summary.succeeded += 1
            else:
                print(f"Migrating: {label}... FAILED: {error}")
                logger.error(f"Import of {book['md5']} failed: {error}")
                summary.failed += 1
        return summary


def main(argv: Optional[list[str]] = None) -> int:
    settings = ClientSettings()
    parser = argparse.ArgumentParser(description="Import KOReader reading statistics")
    parser.add_argument("database", help="Path to statistics.sqlite3")
    parser.add_argument("--endpoint", default=settings.sync_endpoint, help="Service endpoint (events or sync-stats URL)")
    parser.add_argument("--token", default=settings.auth_token, help="Bearer token (default: READINGSYNC_AUTH_TOKEN)")
    parser.add_argument("--timeout", type=float, default=30.0, help="Request timeout in seconds")
    parser.add_argument("--dry-run", action="store_true", help="List what would be sent without sending")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if not args.dry_run and not args.token:
        print("Error: no auth token; pass --token or set READINGSYNC_AUTH_TOKEN", file=sys.stderr)
        return 2

    try:
        reader = KOReaderStatsReader(args.database)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    importer = BulkImporter(args.endpoint, args.token, timeout=args.timeout)
    print(f"Migrating from: {args.database}")
    print(f"To endpoint: {importer.endpoint}\n")
    try:
        summary = importer.run(reader, dry_run=args.dry_run)
    finally:
        importer.close()
        reader.close()

    print(f"\nMigration complete: {summary.succeeded}/{summary.total} succeeded, {summary.failed} failed")
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
