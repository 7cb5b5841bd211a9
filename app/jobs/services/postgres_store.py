"""
PostgreSQL persistence for jobs and audit entries.

Tables are created by scripts/init-db.sql (no runtime DDL):
- boss_jobs: one row per job, the full snapshot stored as JSONB
- audit_log_entries: append-only, ordered by (timestamp, sequence_number)

Repositories either borrow a connection owned by a PostgresUnitOfWork (and
leave commit/rollback to it) or open a short-lived connection per call.
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import partial
from types import TracebackType
from typing import Any, Callable, Iterator

import psycopg
from loguru import logger
from psycopg.types.json import Jsonb

from boss_core.domain.audit import ActorType, AuditLogEntry, NewAuditLogEntry
from boss_core.domain.exceptions import ConcurrentTransitionError, JobNotFoundError
from boss_core.domain.jobs import Job, JobStatus
from boss_core.infrastructure.postgres import get_db_connection

AUDIT_ID_PREFIX = "audit_"


class _PostgresRepository:
    def __init__(self, conn: psycopg.Connection | None = None):
        self._conn = conn

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        if self._conn is not None:
            yield self._conn
            return
        with get_db_connection() as conn:
            yield conn


class PostgresAuditLogStore(_PostgresRepository):
    """
    Append-only audit store in PostgreSQL.

    The sequence number doubles as the entry id (`audit_<n>`); the timestamp
    is assigned by the database clock at insert time.
    """

    def append(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        try:
            with self._connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO audit_log_entries
                    (job_id, from_status, to_status, actor, note)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING sequence_number, timestamp
                    """,
                    (
                        entry.job_id,
                        entry.from_status.value if entry.from_status else None,
                        entry.to_status.value,
                        entry.actor.value,
                        entry.note,
                    ),
                )
                sequence_number, timestamp = cursor.fetchone()
        except psycopg.Error as e:
            logger.error(f"Failed to write audit entry for job {entry.job_id}: {e}")
            raise

        return AuditLogEntry(
            id=f"{AUDIT_ID_PREFIX}{sequence_number}",
            timestamp=timestamp,
            **entry.model_dump(),
        )

    def query_by_job(self, job_id: str) -> list[AuditLogEntry]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT sequence_number, job_id, from_status, to_status,
                       actor, note, timestamp
                FROM audit_log_entries
                WHERE job_id = %s
                ORDER BY timestamp ASC, sequence_number ASC
                """,
                (job_id,),
            )
            rows = cursor.fetchall()

        return [self._row_to_entry(row) for row in rows]

    def exists_for_job(self, job_id: str) -> bool:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT EXISTS (SELECT 1 FROM audit_log_entries WHERE job_id = %s)",
                (job_id,),
            )
            row = cursor.fetchone()

        return bool(row and row[0])

    def _row_to_entry(self, row: tuple) -> AuditLogEntry:
        """Convert database row to an AuditLogEntry."""
        return AuditLogEntry(
            id=f"{AUDIT_ID_PREFIX}{row[0]}",
            job_id=row[1],
            from_status=JobStatus(row[2]) if row[2] else None,
            to_status=JobStatus(row[3]),
            actor=ActorType(row[4]),
            note=row[5],
            timestamp=row[6],
        )


class PostgresJobRepository(_PostgresRepository):
    """
    Job snapshots in PostgreSQL.

    `status` and `created_at` are duplicated out of the JSONB document so
    updates can compare-and-set on status and listings can sort.
    """

    def add(self, job: Job) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO boss_jobs (job_id, status, created_at, document)
                VALUES (%s, %s, %s, %s)
                """,
                (job.job_id, job.status.value, job.created_at, Jsonb(self._document(job))),
            )

        logger.debug(f"Inserted job {job.job_id} ({job.status.value})")

    def get(self, job_id: str) -> Job | None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT document FROM boss_jobs WHERE job_id = %s",
                (job_id,),
            )
            row = cursor.fetchone()

        return Job.model_validate(row[0]) if row else None

    def update(self, job: Job, expected_status: JobStatus) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE boss_jobs
                SET status = %s, document = %s, updated_at = now()
                WHERE job_id = %s AND status = %s
                """,
                (job.status.value, Jsonb(self._document(job)), job.job_id, expected_status.value),
            )
            if cursor.rowcount == 1:
                return

            cursor.execute("SELECT status FROM boss_jobs WHERE job_id = %s", (job.job_id,))
            row = cursor.fetchone()

        if row is None:
            raise JobNotFoundError(job.job_id)
        raise ConcurrentTransitionError(job.job_id, expected_status.value, row[0])

    def list_all(self) -> list[Job]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT document FROM boss_jobs ORDER BY created_at DESC")
            rows = cursor.fetchall()

        return [Job.model_validate(row[0]) for row in rows]

    def list_by_status(self, status: JobStatus) -> list[Job]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT document FROM boss_jobs
                WHERE status = %s
                ORDER BY created_at DESC
                """,
                (status.value,),
            )
            rows = cursor.fetchall()

        return [Job.model_validate(row[0]) for row in rows]

    @staticmethod
    def _document(job: Job) -> dict[str, Any]:
        return job.model_dump(mode="json")


class PostgresUnitOfWork:
    """
    One PostgreSQL transaction spanning a job update and its audit insert.

    Usage:
        with PostgresUnitOfWork() as uow:
            job = uow.jobs.get(job_id)
            result = StateMachine(uow.audit_log).transition(job, JobStatus.SENT, ActorType.SYSTEM)
            uow.jobs.update(result.job, expected_status=job.status)
    """

    jobs: PostgresJobRepository
    audit_log: PostgresAuditLogStore

    def __init__(
        self,
        dsn: str | None = None,
        connection_factory: Callable[[], psycopg.Connection] | None = None,
    ):
        self._dsn = dsn
        self._connection_factory = connection_factory
        self._conn: psycopg.Connection | None = None

    def __enter__(self) -> PostgresUnitOfWork:
        factory = self._connection_factory or partial(get_db_connection, self._dsn)
        self._conn = factory()
        self.jobs = PostgresJobRepository(self._conn)
        self.audit_log = PostgresAuditLogStore(self._conn)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is None:
                self._conn.commit()
            else:
                self._conn.rollback()
                logger.warning(f"Rolled back job transaction: {exc_type.__name__}: {exc}")
        finally:
            self._conn.close()
            self._conn = None
