"""Audit sinks: where audit entries are delivered.

The engine treats the sink as an external collaborator.  Any object with a
``deliver(entry)`` method satisfies :class:`AuditSink`; delivery may raise
:class:`~enterprise_permissions.model.errors.SinkDeliveryFailure` (or any
other exception), which the recorder retries with backoff.

Provided implementations:

- :class:`InMemoryAuditSink` keeps entries in a list (tests, previews);
- :class:`JsonlAuditSink` appends newline-delimited JSON to a file;
- :class:`NullAuditSink` discards everything.

Example
-------
::

    sink = JsonlAuditSink(Path("/tmp/permissions-audit.jsonl"))
    recorder = AuditRecorder(sink)
"""
from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

from enterprise_permissions.audit.records import AuditEntry
from enterprise_permissions.model.errors import SinkDeliveryFailure


@runtime_checkable
class AuditSink(Protocol):
    """Append-only destination for audit entries."""

    def deliver(self, entry: AuditEntry) -> None:
        """Persist ``entry`` or raise on failure."""
        ...


class NullAuditSink:
    """Discards every entry."""

    def deliver(self, entry: AuditEntry) -> None:
        return None


class InMemoryAuditSink:
    """Thread-safe list-backed sink."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def deliver(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class JsonlAuditSink:
    """Append-only JSONL audit file.

    Parameters
    ----------
    log_path:
        Path to the ``.jsonl`` file.  Parent directories are created
        automatically on first write.
    """

    def __init__(self, log_path: Path) -> None:
        self._log_path = Path(log_path)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def deliver(self, entry: AuditEntry) -> None:
        """Append ``entry`` as one JSON line.

        Raises
        ------
        SinkDeliveryFailure
            If the file cannot be written.
        """
        try:
            with self._lock:
                self._log_path.parent.mkdir(parents=True, exist_ok=True)
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(entry.to_jsonl())
        except OSError as exc:
            raise SinkDeliveryFailure(entry.entry_id, 1, str(exc)) from exc

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def read_all(self) -> list[dict[str, object]]:
        """Return all records in the file, oldest first."""
        return list(self._iter_records())

    def query(self, filters: dict[str, object]) -> list[dict[str, object]]:
        """Return records whose payload matches every ``{field: value}`` pair.

        Top-level entry keys (``category``, ``entry_id``...) are matched
        first, then payload keys.
        """
        results: list[dict[str, object]] = []
        for record in self._iter_records():
            payload = record.get("payload") or {}
            if all(
                record.get(k, payload.get(k)) == v  # type: ignore[union-attr]
                for k, v in filters.items()
            ):
                results.append(record)
        return results

    def count(self) -> int:
        return sum(1 for _ in self._iter_records())

    def last_n(self, n: int) -> list[dict[str, object]]:
        all_records = list(self._iter_records())
        return all_records[-n:] if n < len(all_records) else all_records

    def _iter_records(self) -> Iterator[dict[str, object]]:
        if not self._log_path.exists():
            return
        with self._lock:
            with self._log_path.open("r", encoding="utf-8") as fh:
                lines = [line.strip() for line in fh]
        for line in lines:
            if line:
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    continue  # partially written trailing line

    @property
    def log_path(self) -> Path:
        return self._log_path
