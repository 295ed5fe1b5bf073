"""Append-only audit recorder.

AuditRecorder accepts evaluations and mutation records, stamps them into
immutable :class:`AuditEntry` objects, appends them to an in-process log and
hands them to an :class:`AuditSink`.

Delivery is fire-and-forget from the caller's point of view:

- ``record`` never raises and never sleeps on the caller's thread;
- in asynchronous mode a daemon worker thread delivers entries in order;
- in synchronous mode one delivery attempt is made inline, and a failed
  entry is handed to the worker for its retries;
- retries use exponential backoff, and an entry that exhausts them is
  logged locally and kept in :attr:`failed_entries`.

The in-process log keeps the most recent ``max_retained`` entries.  Entry
sequence numbers keep counting past that bound.

Example
-------
::

    sink = InMemoryAuditSink()
    recorder = AuditRecorder(sink)
    recorder.record(MutationRecord(actor_id="admin", kind=MutationKind.ROLE_CREATED,
                                   target_id="editor"))
    recorder.flush()
    assert len(sink) == 1
"""
from __future__ import annotations

import datetime
import logging
import queue
import threading
import time
import uuid
from collections import deque
from typing import Callable, Literal

from enterprise_permissions.audit.records import AuditCategory, AuditEntry, MutationRecord
from enterprise_permissions.audit.sinks import AuditSink
from enterprise_permissions.model.errors import SinkDeliveryFailure
from enterprise_permissions.model.types import Decision, PermissionEvaluation, RuleSource

logger = logging.getLogger(__name__)

EvaluationPolicy = Literal["restricted", "denials", "all"]

_STOP = object()


class AuditRecorder:
    """Records evaluations and mutations and delivers them to a sink.

    Parameters
    ----------
    sink:
        Destination for entries.
    evaluation_policy:
        Which evaluations are recorded: ``"restricted"`` (denials decided by
        a restriction, the default), ``"denials"`` (every deny) or ``"all"``.
    asynchronous:
        Deliver on a background thread (default) or attempt inline in
        ``record``.  Retries always run on the background thread.
    max_retries:
        Retries after the first failed attempt before giving up.
    backoff_seconds:
        Delay before the first retry.
    backoff_multiplier:
        Factor applied to the delay after each retry.
    max_retained:
        How many recent entries (and failed entries) are kept in memory.
    recorder_id:
        Prefix for entry ids.  A random one is generated if omitted.
    sleep:
        Sleep function used between retries (overridable for tests).
    """

    def __init__(
        self,
        sink: AuditSink,
        evaluation_policy: EvaluationPolicy = "restricted",
        asynchronous: bool = True,
        max_retries: int = 3,
        backoff_seconds: float = 0.1,
        backoff_multiplier: float = 2.0,
        max_retained: int = 1000,
        recorder_id: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retained < 1:
            raise ValueError(f"max_retained must be at least 1, got {max_retained}")
        self._sink = sink
        self._evaluation_policy = evaluation_policy
        self._asynchronous = asynchronous
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._backoff_multiplier = backoff_multiplier
        self._recorder_id = recorder_id or uuid.uuid4().hex[:12]
        self._sleep = sleep

        self._lock = threading.Lock()
        self._entries: deque[AuditEntry] = deque(maxlen=max_retained)
        self._failed: deque[AuditEntry] = deque(maxlen=max_retained)
        self._sequence = 0
        self._delivered = 0
        self._queue: queue.Queue[object] = queue.Queue()
        self._worker: threading.Thread | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def should_record(self, evaluation: PermissionEvaluation) -> bool:
        """Return True when ``evaluation`` falls under the evaluation policy."""
        if self._evaluation_policy == "all":
            return True
        if evaluation.decision is not Decision.DENY:
            return False
        if self._evaluation_policy == "denials":
            return True
        return evaluation.deciding_source is RuleSource.RESTRICTION

    def record(self, item: PermissionEvaluation | MutationRecord) -> AuditEntry:
        """Append ``item`` to the audit log and schedule its delivery.

        Never raises because of sink problems.
        """
        category = (
            AuditCategory.MUTATION
            if isinstance(item, MutationRecord)
            else AuditCategory.EVALUATION
        )
        with self._lock:
            self._sequence += 1
            entry = AuditEntry(
                entry_id=f"{self._recorder_id}-{self._sequence:08d}",
                sequence=self._sequence,
                recorded_at=datetime.datetime.now(datetime.timezone.utc),
                category=category,
                payload=item.to_dict(),
            )
            self._entries.append(entry)
            # Enqueued under the lock so nothing lands behind the stop marker.
            if self._asynchronous and not self._closed:
                self._start_worker_locked()
                self._queue.put((entry, 0, None))
                return entry

        error = self._attempt(entry)
        if error is not None:
            self._retry_later(entry, error)
        return entry

    def record_evaluation(self, evaluation: PermissionEvaluation) -> AuditEntry | None:
        """Record ``evaluation`` if the evaluation policy selects it."""
        if not self.should_record(evaluation):
            return None
        return self.record(evaluation)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def flush(self) -> None:
        """Block until every queued entry has been delivered or given up on."""
        if self._worker is not None:
            self._queue.join()

    def close(self) -> None:
        """Flush pending entries and stop the worker thread.

        Entries recorded after ``close`` get a single inline attempt and are
        given up on if it fails.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            worker = self._worker
            if worker is not None:
                self._queue.put(_STOP)
        if worker is not None:
            worker.join()

    def __enter__(self) -> AuditRecorder:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        """The most recent entries, oldest first."""
        with self._lock:
            return tuple(self._entries)

    @property
    def failed_entries(self) -> tuple[AuditEntry, ...]:
        """Entries that exhausted their delivery retries."""
        with self._lock:
            return tuple(self._failed)

    @property
    def recorded_count(self) -> int:
        """Total entries accepted, including those no longer retained."""
        with self._lock:
            return self._sequence

    @property
    def delivered_count(self) -> int:
        with self._lock:
            return self._delivered

    @property
    def evaluation_policy(self) -> EvaluationPolicy:
        return self._evaluation_policy

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _start_worker_locked(self) -> None:
        # Caller holds self._lock.
        if self._worker is not None:
            return
        self._worker = threading.Thread(
            target=self._run,
            name=f"audit-recorder-{self._recorder_id}",
            daemon=True,
        )
        self._worker.start()

    def _retry_later(self, entry: AuditEntry, error: Exception) -> None:
        with self._lock:
            if not self._closed:
                self._start_worker_locked()
                self._queue.put((entry, 1, error))
                return
        self._give_up(entry, 1, error)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                entry, attempts, error = item  # type: ignore[misc]
                self._process(entry, attempts, error)
            finally:
                self._queue.task_done()

    def _process(self, entry: AuditEntry, attempts: int, error: Exception | None) -> None:
        if attempts == 0:
            attempts, error = 1, self._attempt(entry)
        delay = self._backoff_seconds
        while error is not None and attempts <= self._max_retries:
            logger.warning(
                "Audit delivery attempt %d for %s failed: %s; retrying in %.3fs",
                attempts,
                entry.entry_id,
                error,
                delay,
            )
            self._sleep(delay)
            delay *= self._backoff_multiplier
            attempts += 1
            error = self._attempt(entry)
        if error is not None:
            self._give_up(entry, attempts, error)

    def _attempt(self, entry: AuditEntry) -> Exception | None:
        try:
            self._sink.deliver(entry)
        except Exception as exc:
            return exc
        with self._lock:
            self._delivered += 1
        return None

    def _give_up(self, entry: AuditEntry, attempts: int, error: Exception) -> None:
        failure = SinkDeliveryFailure(entry.entry_id, attempts, str(error))
        logger.error("%s; payload=%s", failure, entry.payload, exc_info=error)
        with self._lock:
            self._failed.append(entry)
