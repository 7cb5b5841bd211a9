"""
Job module protocols.

This module defines the interfaces for the persistence components of the
job status core, allowing the state machine and job service to run against
an in-memory backend in tests and PostgreSQL in production.
"""

from __future__ import annotations

from types import TracebackType
from typing import Protocol, Sequence, runtime_checkable

from boss_core.domain.audit import AuditLogEntry, NewAuditLogEntry
from boss_core.domain.jobs import Job, JobStatus


@runtime_checkable
class AuditLogStore(Protocol):
    """
    Append-only store of audit entries.

    There is no update or delete method.
    """

    def append(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        """
        Store an entry, assigning its id and server-side timestamp.

        Args:
            entry: The validated entry to record.

        Returns:
            AuditLogEntry: The stored copy.
        """
        ...

    def query_by_job(self, job_id: str) -> Sequence[AuditLogEntry]:
        """Return every entry for a job in insertion order."""
        ...

    def exists_for_job(self, job_id: str) -> bool:
        """Return True if at least one entry exists for the job."""
        ...


@runtime_checkable
class JobRepository(Protocol):
    """Persistence for job snapshots."""

    def add(self, job: Job) -> None:
        """Insert a new job. The job_id must not exist yet."""
        ...

    def get(self, job_id: str) -> Job | None:
        """Return the current snapshot of a job, or None."""
        ...

    def update(self, job: Job, expected_status: JobStatus) -> None:
        """
        Replace a stored job if its status still equals `expected_status`.

        Raises:
            JobNotFoundError: If the job does not exist.
            ConcurrentTransitionError: If the stored status has moved on.
        """
        ...

    def list_all(self) -> list[Job]:
        """Return every job, newest first."""
        ...

    def list_by_status(self, status: JobStatus) -> list[Job]:
        """Return jobs in one status, newest first."""
        ...


@runtime_checkable
class UnitOfWork(Protocol):
    """
    Transactional boundary around a job update and its audit append.

    Leaving the block normally commits both writes; leaving it with an
    exception discards both.
    """

    jobs: JobRepository
    audit_log: AuditLogStore

    def __enter__(self) -> UnitOfWork:
        ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        ...
