"""Decode results for payloads received over the wire or read back from disk.

Decoding never raises: callers get ``Ok(value)`` or ``DecodeError(reason)`` and
decide what to do with it.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from .events import MAX_INT, EventType, TelemetryEvent

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class DecodeError:
    reason: str


DecodeResult = Union[Ok[T], DecodeError]


@dataclass
class IngestPayload:
    """A request body reduced to the canonical list of raw event items."""

    items: list[Any] = field(default_factory=list)
    batched: bool = False
    book: Optional[dict[str, Any]] = None
    last_sync_time: Optional[int] = None


def decode_json(raw: Union[bytes, str]) -> DecodeResult[Any]:
    try:
        return Ok(json.loads(raw))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return DecodeError(f"invalid JSON: {e}")


def _describe(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    # Model-level checks have no location; their message already names the field.
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{location}: {message}" if location else message


def decode_event(item: Any) -> DecodeResult[TelemetryEvent]:
    """Validate one raw item into a canonical event."""
    if not isinstance(item, dict):
        return DecodeError("event must be a JSON object")
    if not item.get("title"):
        return DecodeError("title is required")
    try:
        return Ok(TelemetryEvent.model_validate(item))
    except PydanticValidationError as e:
        return DecodeError(_describe(e))


def _page_stats_to_items(book: dict[str, Any], page_stats: list[Any]) -> list[Any]:
    """Spread the batched book + page stats shape into canonical event items."""
    items: list[Any] = []
    for stat in page_stats:
        if not isinstance(stat, dict):
            items.append(stat)
            continue
        items.append({
            "event_type": EventType.PAGE_TURN.value,
            "title": book.get("title"),
            "authors": book.get("authors") or book.get("author"),
            "isbn": book.get("isbn"),
            "md5": book.get("md5") or book.get("identity"),
            "current_page": stat.get("page"),
            "timestamp": stat.get("start_time"),
            "duration": stat.get("duration"),
            "total_pages": stat.get("total_pages") or book.get("pages"),
        })
    return items


def decode_payload(raw: Union[bytes, str]) -> DecodeResult[IngestPayload]:
    """Decode an ingestion request body.

    Accepts a single event object, an array of event objects, or the batched
    ``{"book": {...}, "page_stats": [...], "last_sync_time": n}`` shape.
    """
    parsed = decode_json(raw)
    if isinstance(parsed, DecodeError):
        return parsed
    body = parsed.value

    if isinstance(body, list):
        return Ok(IngestPayload(items=body, batched=True))

    if not isinstance(body, dict):
        return DecodeError("payload must be an event object or an array of events")

    if "page_stats" in body or "book" in body:
        book = body.get("book")
        page_stats = body.get("page_stats")
        if not isinstance(book, dict):
            return DecodeError("book must be an object")
        if page_stats is None:
            page_stats = []
        if not isinstance(page_stats, list):
            return DecodeError("page_stats must be an array")
        last_sync_time = body.get("last_sync_time")
        if last_sync_time is not None and (
            not isinstance(last_sync_time, int) or isinstance(last_sync_time, bool) or not 0 <= last_sync_time <= MAX_INT
        ):
            return DecodeError(f"last_sync_time must be an integer between 0 and {MAX_INT}")
        return Ok(IngestPayload(
            items=_page_stats_to_items(book, page_stats),
            batched=True,
            book=book,
            last_sync_time=last_sync_time,
        ))

    return Ok(IngestPayload(items=[body], batched=False))
