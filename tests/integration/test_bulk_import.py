"""Tests for the KOReader statistics bulk import."""

import json
import sqlite3

import httpx
import pytest

from readingsync.tools.bulk_import import (
    BulkImporter,
    KOReaderStatsReader,
    build_payload,
    main,
    normalize_endpoint,
)

T0 = 1_600_000_000


@pytest.fixture
def statistics_db(tmp_path):
    """A small KOReader statistics database."""
    path = tmp_path / "statistics.sqlite3"
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE book (id INTEGER PRIMARY KEY, title TEXT, authors TEXT, md5 TEXT);
        CREATE TABLE page_stat_data (
            id_book INTEGER, page INTEGER, start_time INTEGER, duration INTEGER, total_pages INTEGER
        );
    """)
    conn.executemany(
        "INSERT INTO book (id, title, authors, md5) VALUES (?, ?, ?, ?)",
        [
            (1, "Dune", "Frank Herbert", "md5-dune"),
            (2, "Scan", "N/A", "md5-scan"),
            (3, "No Hash", "Someone", None),
            (4, "Unread", "Jane Austen", "md5-unread"),
            (5, "Anonymous", "", "md5-anon"),
        ],
    )
    conn.executemany(
        "INSERT INTO page_stat_data VALUES (?, ?, ?, ?, ?)",
        [
            (1, 1, T0, 30, 400),
            (1, 2, T0 + 30, 45, 412),
            (2, 1, T0, 10, 20),
            (3, 1, T0, 10, 20),
            (5, 1, T0, 10, 20),
        ],
    )
    conn.commit()
    conn.close()
    return path


def test_reader_skips_unusable_books(statistics_db):
    reader = KOReaderStatsReader(str(statistics_db))

    books = reader.books()
    stats = reader.page_stats(1)
    reader.close()

    assert books == [{"id": 1, "title": "Dune", "authors": "Frank Herbert", "md5": "md5-dune", "pages": 412}]
    assert [s["page"] for s in stats] == [1, 2]


def test_reader_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        KOReaderStatsReader(str(tmp_path / "missing.sqlite3"))


def test_build_payload():
    stats = [{"page": 1, "start_time": T0, "duration": 30, "total_pages": 400}]

    payload = build_payload({"md5": "m", "title": "Dune", "authors": "Frank Herbert", "pages": 412}, stats)

    assert payload == {
        "book": {"md5": "m", "title": "Dune", "authors": "Frank Herbert", "pages": 412},
        "page_stats": stats,
        "last_sync_time": T0,
    }


@pytest.mark.parametrize(
    "endpoint,expected",
    [
        ("https://sync.example/events", "https://sync.example/sync-stats"),
        ("https://sync.example/sync_stats", "https://sync.example/sync-stats"),
        ("https://sync.example/sync-stats", "https://sync.example/sync-stats"),
        ("https://sync.example/", "https://sync.example/sync-stats"),
    ],
)
def test_normalize_endpoint(endpoint, expected):
    assert normalize_endpoint(endpoint) == expected


def test_import_posts_each_book(statistics_db):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        body = json.loads(request.content)
        count = len(body["page_stats"])
        return httpx.Response(200, json={"ok": True, "processed": count, "succeeded": count, "failed": 0})

    importer = BulkImporter(
        "https://sync.example/events", "secret", client=httpx.Client(transport=httpx.MockTransport(handler))
    )
    reader = KOReaderStatsReader(str(statistics_db))

    summary = importer.run(reader)
    reader.close()

    assert (summary.total, summary.succeeded, summary.failed) == (1, 1, 0)
    [request] = requests
    assert str(request.url) == "https://sync.example/sync-stats"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content)["book"]["md5"] == "md5-dune"


def test_import_reports_failures(statistics_db):
    importer = BulkImporter(
        "https://sync.example/events",
        "wrong",
        client=httpx.Client(transport=httpx.MockTransport(
            lambda request: httpx.Response(401, json={"error": "unauthorized"})
        )),
    )

    assert importer.import_book({"book": {}, "page_stats": []}) == "unauthorized"


def test_main_dry_run(statistics_db, capsys):
    exit_code = main([str(statistics_db), "--dry-run", "--endpoint", "https://sync.example/events"])

    assert exit_code == 0
    assert "Would migrate: Dune (2 page events)" in capsys.readouterr().out


def test_main_requires_token(statistics_db, monkeypatch):
    monkeypatch.delenv("READINGSYNC_AUTH_TOKEN", raising=False)

    assert main([str(statistics_db), "--endpoint", "https://sync.example/events"]) == 2


def test_main_missing_database(tmp_path):
    assert main([str(tmp_path / "missing.sqlite3"), "--dry-run"]) == 1
