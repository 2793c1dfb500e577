"""Tests for session entities."""

import pytest

from readingsync.domain.entities.reading_session import ReadingSession, compute_pages_read


@pytest.mark.parametrize(
    "start_page,end_page,expected",
    [
        (10, 25, 15),
        (50, 40, 0),
        (7, 7, 0),
        (None, 40, 0),
        (10, None, 0),
    ],
)
def test_compute_pages_read_clamps(start_page, end_page, expected):
    assert compute_pages_read(start_page, end_page) == expected


def test_end_only_session():
    session = ReadingSession(id="s-1", book_id=1, ended_at=1700000000, end_page=40)

    assert session.is_end_only
    assert not session.is_open
    assert session.pages_read == 0


def test_negative_pages_read_rejected():
    with pytest.raises(ValueError):
        ReadingSession(id="s-1", book_id=1, pages_read=-10)
