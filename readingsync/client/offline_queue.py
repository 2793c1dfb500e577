"""Crash-durable offline queue of telemetry records.

Entries are stored one per line as ``{"seq": n, "record": {...}}``. Appends are
fsynced before ``enqueue`` returns; rewrites go through a temp file that
atomically replaces the queue file.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from ..domain.entities.decoding import DecodeError, DecodeResult, Ok, decode_json

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


@dataclass(frozen=True)
class QueueEntry:
    """A queued record and its enqueue sequence number."""

    seq: int
    record: dict[str, Any]

    def to_line(self) -> str:
        return json.dumps({"seq": self.seq, "record": self.record}, separators=(",", ":"))


def decode_entry(line: str) -> DecodeResult[Union[QueueEntry, dict[str, Any]]]:
    """Decode one queue line.

    Lines from queue files written before sequence numbers existed hold a bare
    event object; those decode to the record itself and get a sequence number
    on load.
    """
    parsed = decode_json(line)
    if isinstance(parsed, DecodeError):
        return parsed
    body = parsed.value
    if not isinstance(body, dict):
        return DecodeError("entry is not an object")
    if "seq" not in body:
        if "title" in body:
            return Ok(body)
        return DecodeError("entry has no seq")
    seq, record = body.get("seq"), body.get("record")
    if not isinstance(seq, int) or isinstance(seq, bool) or seq < 1:
        return DecodeError(f"invalid seq: {seq!r}")
    if not isinstance(record, dict):
        return DecodeError("entry record is not an object")
    return Ok(QueueEntry(seq=seq, record=record))


class DurableOfflineQueue:
    """Bounded FIFO of records awaiting delivery.

    The queue is the only component that removes entries: the transport reads
    a snapshot via ``peek_all`` and entries are cleared with ``acknowledge``.
    Above ``capacity`` the oldest entries are evicted.
    """

    def __init__(self, path: Union[str, Path], capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.path = Path(path)
        self.capacity = capacity
        self._entries: list[QueueEntry] = []
        self._next_seq = 1
        self._load()

    def __len__(self) -> int:
        return len(self._entries)

    def enqueue(self, record: dict[str, Any]) -> QueueEntry:
        """Append a record. Durable on disk when this returns."""
        entry = QueueEntry(seq=self._next_seq, record=record)
        self._next_seq += 1

        overflow = len(self._entries) + 1 - self.capacity
        if overflow > 0:
            evicted = self._entries[:overflow]
            self._entries = self._entries[overflow:] + [entry]
            logger.warning(
                f"Offline queue full ({self.capacity}), evicted {len(evicted)} oldest "
                f"record(s) up to seq {evicted[-1].seq}"
            )
            self._rewrite()
        else:
            self._entries.append(entry)
            self._append(entry)
        return entry

    def peek_all(self) -> list[QueueEntry]:
        """All entries in enqueue order, without removing them."""
        return list(self._entries)

    def acknowledge(self, up_to_seq: int) -> int:
        """Remove every entry with ``seq <= up_to_seq``.

        Returns:
            Number of entries removed.
        """
        remaining = [entry for entry in self._entries if entry.seq > up_to_seq]
        removed = len(self._entries) - len(remaining)
        if removed:
            self._entries = remaining
            self._rewrite()
            logger.debug(f"Acknowledged {removed} record(s) up to seq {up_to_seq}")
        return removed

    def _load(self) -> None:
        if not self.path.exists():
            return

        entries: list[QueueEntry] = []
        bare: list[dict[str, Any]] = []
        skipped = 0
        with open(self.path, "r", encoding="utf-8", errors="replace") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                decoded = decode_entry(line)
                if isinstance(decoded, DecodeError):
                    logger.warning(f"Skipping corrupt queue line {lineno} in {self.path}: {decoded.reason}")
                    skipped += 1
                elif isinstance(decoded.value, QueueEntry):
                    entries.append(decoded.value)
                else:
                    bare.append(decoded.value)

        entries.sort(key=lambda entry: entry.seq)
        next_seq = entries[-1].seq + 1 if entries else 1
        for record in bare:
            entries.append(QueueEntry(seq=next_seq, record=record))
            next_seq += 1

        overflow = len(entries) - self.capacity
        if overflow > 0:
            logger.warning(f"Offline queue over capacity on load, evicting {overflow} oldest record(s)")
            entries = entries[overflow:]

        self._entries = entries
        self._next_seq = next_seq
        if skipped or bare or overflow > 0:
            self._rewrite()
        logger.info(f"Loaded {len(entries)} queued record(s) from {self.path}")

    def _append(self, entry: QueueEntry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(entry.to_line() + "\n")
            f.flush()
            os.fsync(f.fileno())

    def _rewrite(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            for entry in self._entries:
                f.write(entry.to_line() + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)
