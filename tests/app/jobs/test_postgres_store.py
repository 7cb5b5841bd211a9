"""
Unit tests for the PostgreSQL persistence backend.

Uses a mocked psycopg connection; no database is required.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import psycopg
import pytest

from app.jobs.services.postgres_store import (
    PostgresAuditLogStore,
    PostgresJobRepository,
    PostgresUnitOfWork,
)
from boss_core.domain.audit import ActorType, NewAuditLogEntry
from boss_core.domain.exceptions import ConcurrentTransitionError, JobNotFoundError
from boss_core.domain.jobs import FileType, Job, JobStatus

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class TestAuditAppend:
    """Tests for appending audit entries."""

    def test_append_inserts_row(self, mock_postgres):
        """Appending should INSERT into audit_log_entries and read back the key."""
        mock_cursor = mock_postgres["cursor"]
        mock_cursor.fetchone.return_value = (42, T0)

        PostgresAuditLogStore().append(sample_entry())

        query = str(mock_cursor.execute.call_args[0][0]).upper()
        assert "INSERT INTO AUDIT_LOG_ENTRIES" in query
        assert "RETURNING" in query
        params = mock_cursor.execute.call_args[0][1]
        assert params == ("job-1", "DRAFT", "SENT", "SYSTEM", "sent ok")

    def test_append_uses_database_id_and_timestamp(self, mock_postgres):
        """Id and timestamp come from the database row."""
        mock_postgres["cursor"].fetchone.return_value = (42, T0)

        stored = PostgresAuditLogStore().append(sample_entry())

        assert stored.id == "audit_42"
        assert stored.timestamp == T0
        assert stored.to_status == JobStatus.SENT

    def test_append_creation_entry_stores_null_from(self, mock_postgres):
        """The creation entry writes NULL for from_status."""
        mock_cursor = mock_postgres["cursor"]
        mock_cursor.fetchone.return_value = (1, T0)

        PostgresAuditLogStore().append(
            NewAuditLogEntry(job_id="job-1", to_status=JobStatus.DRAFT, actor=ActorType.SYSTEM)
        )

        params = mock_cursor.execute.call_args[0][1]
        assert params[1] is None

    def test_append_reraises_database_errors(self, mock_postgres):
        """Database failures propagate to the caller."""
        mock_postgres["cursor"].execute.side_effect = psycopg.OperationalError("down")

        with pytest.raises(psycopg.OperationalError):
            PostgresAuditLogStore().append(sample_entry())


class TestAuditQuery:
    """Tests for reading audit entries."""

    def test_query_orders_by_timestamp_then_sequence(self, mock_postgres):
        """The query sorts chronologically with the sequence as tie-breaker."""
        mock_cursor = mock_postgres["cursor"]
        mock_cursor.fetchall.return_value = []

        PostgresAuditLogStore().query_by_job("job-1")

        query = " ".join(str(mock_cursor.execute.call_args[0][0]).split()).upper()
        assert "WHERE JOB_ID = %S" in query
        assert "ORDER BY TIMESTAMP ASC, SEQUENCE_NUMBER ASC" in query

    def test_query_maps_rows(self, mock_postgres):
        """Rows are converted to AuditLogEntry objects."""
        mock_postgres["cursor"].fetchall.return_value = [
            (1, "job-1", None, "DRAFT", "SYSTEM", None, T0),
            (2, "job-1", "DRAFT", "SENT", "SYSTEM", "retry", T0),
        ]

        entries = PostgresAuditLogStore().query_by_job("job-1")

        assert [e.id for e in entries] == ["audit_1", "audit_2"]
        assert entries[0].from_status is None
        assert entries[1].from_status == JobStatus.DRAFT
        assert entries[1].actor == ActorType.SYSTEM
        assert entries[1].note == "retry"

    @pytest.mark.parametrize("row, expected", [((True,), True), ((False,), False)])
    def test_exists_for_job(self, mock_postgres, row, expected):
        """exists_for_job reads the EXISTS flag."""
        mock_postgres["cursor"].fetchone.return_value = row

        assert PostgresAuditLogStore().exists_for_job("job-1") is expected


class TestJobRepository:
    """Tests for job snapshot persistence."""

    def test_add_inserts_document(self, mock_postgres):
        """Adding a job stores its status and JSON document."""
        mock_cursor = mock_postgres["cursor"]
        job = sample_job()

        PostgresJobRepository().add(job)

        query = str(mock_cursor.execute.call_args[0][0]).upper()
        assert "INSERT INTO BOSS_JOBS" in query
        params = mock_cursor.execute.call_args[0][1]
        assert params[0] == "job-1"
        assert params[1] == "DRAFT"
        assert params[3].obj["original_filename"] == "brief.pdf"

    def test_get_validates_document(self, mock_postgres):
        """A stored document is parsed back into a Job."""
        job = sample_job()
        mock_postgres["cursor"].fetchone.return_value = (job.model_dump(mode="json"),)

        assert PostgresJobRepository().get("job-1") == job

    def test_get_missing_returns_none(self, mock_postgres):
        """An unknown job returns None."""
        mock_postgres["cursor"].fetchone.return_value = None

        assert PostgresJobRepository().get("ghost") is None

    def test_update_compares_status(self, mock_postgres):
        """Update only matches the row while it still has the expected status."""
        mock_cursor = mock_postgres["cursor"]
        mock_cursor.rowcount = 1
        job = sample_job().with_status(JobStatus.SENT)

        PostgresJobRepository().update(job, expected_status=JobStatus.DRAFT)

        query = " ".join(str(mock_cursor.execute.call_args[0][0]).split()).upper()
        assert "WHERE JOB_ID = %S AND STATUS = %S" in query
        params = mock_cursor.execute.call_args[0][1]
        assert params[0] == "SENT"
        assert params[-1] == "DRAFT"

    def test_update_lost_race_raises_conflict(self, mock_postgres):
        """If no row matched but the job exists, the status moved concurrently."""
        mock_cursor = mock_postgres["cursor"]
        mock_cursor.rowcount = 0
        mock_cursor.fetchone.return_value = ("FAILED_SEND",)

        with pytest.raises(ConcurrentTransitionError) as exc_info:
            PostgresJobRepository().update(
                sample_job().with_status(JobStatus.SENT), expected_status=JobStatus.DRAFT
            )

        assert exc_info.value.actual_status == "FAILED_SEND"

    def test_update_missing_job_raises(self, mock_postgres):
        """If no row matched and the job does not exist, raise JobNotFoundError."""
        mock_cursor = mock_postgres["cursor"]
        mock_cursor.rowcount = 0
        mock_cursor.fetchone.return_value = None

        with pytest.raises(JobNotFoundError):
            PostgresJobRepository().update(sample_job(), expected_status=JobStatus.DRAFT)

    def test_list_by_status_filters_and_sorts(self, mock_postgres):
        """Listing by status filters in SQL and sorts newest first."""
        mock_cursor = mock_postgres["cursor"]
        mock_cursor.fetchall.return_value = [(sample_job().model_dump(mode="json"),)]

        jobs = PostgresJobRepository().list_by_status(JobStatus.DRAFT)

        query = " ".join(str(mock_cursor.execute.call_args[0][0]).split()).upper()
        assert "WHERE STATUS = %S" in query
        assert "ORDER BY CREATED_AT DESC" in query
        assert [job.job_id for job in jobs] == ["job-1"]

    def test_shared_connection_is_not_closed(self):
        """A repository bound to a unit's connection never opens its own."""
        conn = MagicMock()
        conn.cursor.return_value.fetchone.return_value = None

        with patch("app.jobs.services.postgres_store.get_db_connection") as mock_get_conn:
            PostgresJobRepository(conn).get("job-1")

        mock_get_conn.assert_not_called()
        conn.close.assert_not_called()


class TestPostgresUnitOfWork:
    """Tests for the transactional boundary."""

    def test_commits_on_success(self):
        """Leaving the block normally commits and closes."""
        conn = MagicMock()

        with PostgresUnitOfWork(connection_factory=lambda: conn) as uow:
            assert uow.jobs is not None
            assert uow.audit_log is not None

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        conn.close.assert_called_once()

    def test_rolls_back_on_error(self):
        """An exception inside the block rolls back, closes and propagates."""
        conn = MagicMock()

        with pytest.raises(ConcurrentTransitionError):
            with PostgresUnitOfWork(connection_factory=lambda: conn):
                raise ConcurrentTransitionError("job-1", "DRAFT", "SENT")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        conn.close.assert_called_once()

    def test_repositories_share_connection(self):
        """Job and audit writes in one unit go through the same connection."""
        conn = MagicMock()
        cursor = conn.cursor.return_value
        cursor.rowcount = 1
        cursor.fetchone.return_value = (7, T0)

        with PostgresUnitOfWork(connection_factory=lambda: conn) as uow:
            uow.jobs.update(sample_job().with_status(JobStatus.SENT), JobStatus.DRAFT)
            uow.audit_log.append(sample_entry())

        assert cursor.execute.call_count == 2
        conn.commit.assert_called_once()

    def test_defaults_to_configured_connection(self, mock_postgres):
        """Without a factory the unit opens a connection from settings."""
        with PostgresUnitOfWork():
            pass

        mock_postgres["connection"].commit.assert_called_once()

    def test_dsn_is_passed_to_connection(self):
        """A unit built with a DSN opens its connection with that DSN."""
        with patch("app.jobs.services.postgres_store.get_db_connection") as mock_get_conn:
            with PostgresUnitOfWork(dsn="dbname=review_replica"):
                pass

        mock_get_conn.assert_called_once_with("dbname=review_replica")


# --- Helpers ---


def sample_entry():
    return NewAuditLogEntry(
        job_id="job-1",
        from_status=JobStatus.DRAFT,
        to_status=JobStatus.SENT,
        actor=ActorType.SYSTEM,
        note="sent ok",
    )


def sample_job():
    return Job(
        job_id="job-1",
        original_filename="brief.pdf",
        file_type=FileType.PDF,
        file_size_bytes=2048,
        file_storage_key="uploads/job-1/brief.pdf",
        created_at=T0,
    )


# --- Fixtures ---


@pytest.fixture
def mock_postgres():
    """Provides mock PostgreSQL connection and cursor."""
    with patch("app.jobs.services.postgres_store.get_db_connection") as mock_get_conn:
        mock_conn = MagicMock()
        mock_cursor = MagicMock()

        mock_conn.cursor.return_value = mock_cursor
        mock_conn.__enter__ = MagicMock(return_value=mock_conn)
        mock_conn.__exit__ = MagicMock(return_value=False)

        mock_get_conn.return_value = mock_conn

        yield {
            "connection": mock_conn,
            "cursor": mock_cursor,
        }
