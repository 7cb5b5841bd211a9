"""
In-memory persistence for jobs and audit entries.

Used by tests and single-process deployments. Every structure is guarded by
a lock and hands out frozen snapshots, so readers never see a torn record.
Audit entries written inside a unit of work are staged and published on
success only.
"""

from __future__ import annotations

import itertools
import threading
from datetime import datetime
from types import TracebackType
from typing import Callable

from loguru import logger

from boss_core.domain.audit import AuditLogEntry, NewAuditLogEntry
from boss_core.domain.exceptions import ConcurrentTransitionError, JobNotFoundError
from boss_core.domain.jobs import Job, JobStatus, utcnow


class InMemoryAuditLogStore:
    """
    Append-only audit store kept in process memory.

    Ids are `audit_<n>` with n increasing from 1. Timestamps never go
    backwards within one store, even if the wall clock does.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries_by_job: dict[str, list[AuditLogEntry]] = {}
        self._ids = itertools.count(1)
        self._last_timestamp: datetime | None = None

    def append(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        with self._lock:
            stored = self._assign(entry)
            self._entries_by_job.setdefault(stored.job_id, []).append(stored)
        return stored

    def query_by_job(self, job_id: str) -> tuple[AuditLogEntry, ...]:
        with self._lock:
            return tuple(self._entries_by_job.get(job_id, ()))

    def exists_for_job(self, job_id: str) -> bool:
        with self._lock:
            return bool(self._entries_by_job.get(job_id))

    def count(self) -> int:
        """Total number of entries across all jobs."""
        with self._lock:
            return sum(len(entries) for entries in self._entries_by_job.values())

    def stage(self) -> StagedAuditLog:
        """Open a buffer whose appends only become visible once published."""
        return StagedAuditLog(self)

    def _reserve(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        with self._lock:
            return self._assign(entry)

    def _publish(self, entries: list[AuditLogEntry]) -> None:
        with self._lock:
            for stored in entries:
                self._entries_by_job.setdefault(stored.job_id, []).append(stored)

    def _assign(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        # Caller holds self._lock
        timestamp = self._clock()
        if self._last_timestamp is not None and timestamp < self._last_timestamp:
            timestamp = self._last_timestamp
        self._last_timestamp = timestamp

        return AuditLogEntry(
            id=f"audit_{next(self._ids)}",
            timestamp=timestamp,
            **entry.model_dump(),
        )


class StagedAuditLog:
    """
    Audit appends held back until their unit of work succeeds.

    Entries get their id and timestamp at append time; a discarded entry
    leaves a gap in the id sequence and is never visible to readers.
    """

    def __init__(self, store: InMemoryAuditLogStore):
        self._store = store
        self._pending: list[AuditLogEntry] = []

    def append(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        stored = self._store._reserve(entry)
        self._pending.append(stored)
        return stored

    def query_by_job(self, job_id: str) -> tuple[AuditLogEntry, ...]:
        pending = tuple(e for e in self._pending if e.job_id == job_id)
        return self._store.query_by_job(job_id) + pending

    def exists_for_job(self, job_id: str) -> bool:
        return self._store.exists_for_job(job_id) or any(
            e.job_id == job_id for e in self._pending
        )

    @property
    def pending(self) -> tuple[AuditLogEntry, ...]:
        return tuple(self._pending)

    def publish(self) -> None:
        self._store._publish(self._pending)
        self._pending = []

    def discard(self) -> int:
        """Drop every pending entry; returns how many were dropped."""
        dropped = len(self._pending)
        self._pending = []
        return dropped


class InMemoryJobRepository:
    """Job snapshots keyed by job_id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}

    def add(self, job: Job) -> None:
        with self._lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Job already exists: {job.job_id}")
            self._jobs[job.job_id] = job

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job: Job, expected_status: JobStatus) -> None:
        with self._lock:
            current = self._jobs.get(job.job_id)
            if current is None:
                raise JobNotFoundError(job.job_id)
            if current.status != expected_status:
                raise ConcurrentTransitionError(
                    job.job_id, expected_status.value, current.status.value
                )
            self._jobs[job.job_id] = job

    def list_all(self) -> list[Job]:
        with self._lock:
            jobs = list(self._jobs.values())
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    def list_by_status(self, status: JobStatus) -> list[Job]:
        return [job for job in self.list_all() if job.status == status]


class InMemoryUnitOfWork:
    """
    Unit of work over the in-memory backend.

    Audit appends go to a StagedAuditLog and reach the shared store only when
    the block exits normally; an exception discards them. Job writes apply
    immediately, so JobService makes the compare-and-set update the last
    write of a unit: when it fails, the job is untouched and the staged
    entry is dropped.
    """

    def __init__(self, jobs: InMemoryJobRepository, audit_log: InMemoryAuditLogStore):
        self.jobs = jobs
        self._store = audit_log
        self.audit_log = audit_log.stage()

    def __enter__(self) -> InMemoryUnitOfWork:
        self.audit_log = self._store.stage()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.audit_log.publish()
            return

        dropped = self.audit_log.discard()
        logger.warning(
            f"In-memory unit of work aborted ({dropped} audit entries dropped): "
            f"{exc_type.__name__}: {exc}"
        )
