"""
JobService: the unit of work around job status changes.

This service handles:
- Creating jobs together with their initial (null → DRAFT) audit entry
- Applying transitions: one job update and one audit append per success,
  serialized per job and committed as a single unit
- Boss review actions (approve, reject, request revision)
- Recording Factory submission and callback outcomes
- Read access to jobs, the review inbox and the audit trail
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from loguru import logger

from app.jobs.audit_query import DEFAULT_PAGE_LIMIT, AuditQueryService
from app.jobs.protocols import UnitOfWork
from app.jobs.state_machine import StateMachine, TransitionErrorKind, TransitionResult
from boss_core.domain.audit import ActorType, AuditLogPage
from boss_core.domain.exceptions import JobNotFoundError
from boss_core.domain.jobs import (
    MAX_FAILURE_REASON_CHARS,
    FileType,
    Job,
    JobStatus,
    QAReport,
    QAStatus,
    RevisionHistoryEntry,
    create_job,
    utcnow,
)
from boss_core.runtime.retry import RetryPolicy, with_retry

CONFLICT_RETRY_POLICY = RetryPolicy(max_attempts=3, base_delay=0.02, max_delay=0.2)


class JobLockRegistry:
    """
    One lock per job_id, so transitions on the same job run one at a time.

    A lock lives only while some caller holds or waits for it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # job_id -> [lock, number of holders and waiters]
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, job_id: str) -> Iterator[None]:
        with self._guard:
            slot = self._locks.setdefault(job_id, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[job_id]

    def active_count(self) -> int:
        """Number of job_ids with a live lock."""
        with self._guard:
            return len(self._locks)


class JobService:
    """
    Service for job lifecycle operations.

    Usage:
        service = JobService(get_unit_of_work_factory())
        job = service.create_job(
            original_filename="brief.pdf",
            file_type=FileType.PDF,
            file_size_bytes=2048,
            file_storage_key="uploads/brief.pdf",
        )
        service.record_submission(job.job_id, succeeded=True)
        result = service.reject(job.job_id, note="Wrong audience")
        if not result.success:
            ...  # result.error_kind / result.error
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        locks: JobLockRegistry | None = None,
    ):
        self._uow_factory = uow_factory
        self._locks = locks if locks is not None else JobLockRegistry()

    # ------------------------------------------------------------------
    # Creation and transitions
    # ------------------------------------------------------------------

    def create_job(
        self,
        *,
        original_filename: str,
        file_type: FileType,
        file_size_bytes: int,
        file_storage_key: str,
        job_id: str | None = None,
    ) -> Job:
        """
        Create a DRAFT job and its initial audit entry in one unit.

        Args:
            original_filename: Filename as uploaded.
            file_type: Upload format.
            file_size_bytes: Size of the stored upload.
            file_storage_key: Where the upload was stored.
            job_id: Optional job ID (generates one if not provided).

        Returns:
            Job: The new snapshot.
        """
        job = create_job(
            job_id=job_id or str(uuid.uuid4()),
            original_filename=original_filename,
            file_type=file_type,
            file_size_bytes=file_size_bytes,
            file_storage_key=file_storage_key,
        )

        with self._locks.hold(job.job_id), self._uow_factory() as uow:
            uow.jobs.add(job)
            StateMachine(uow.audit_log).create_initial(job.job_id)

        logger.info(f"Created job {job.job_id} for {original_filename}")
        return job

    def apply_transition(
        self,
        job_id: str,
        to_status: JobStatus,
        actor: ActorType,
        note: str | None = None,
        changes: dict[str, Any] | None = None,
    ) -> TransitionResult:
        """
        Change a job's status and persist it together with its audit entry.

        Args:
            job_id: Job to transition.
            to_status: Target status.
            actor: Who initiated the transition (decided server-side).
            note: Optional audit note (max 1000 chars).
            changes: Payload fields to update in the same unit. May not
                contain `status` or a different `job_id`.

        Returns:
            TransitionResult. A refused transition writes nothing. A lost
            compare-and-set is retried against the reloaded job, so the
            outcome may then be a refusal.

        Raises:
            JobNotFoundError: If the job does not exist.
            ConcurrentTransitionError: If the stored status kept moving for
                every attempt of CONFLICT_RETRY_POLICY.
        """
        if changes and "status" in changes:
            raise ValueError("status can only change through a transition")

        return self._apply_once(job_id, to_status, actor, note, changes)

    @with_retry(CONFLICT_RETRY_POLICY)
    def _apply_once(
        self,
        job_id: str,
        to_status: JobStatus,
        actor: ActorType,
        note: str | None,
        changes: dict[str, Any] | None,
    ) -> TransitionResult:
        # A lost compare-and-set aborts the unit; the retry reloads the job
        with self._locks.hold(job_id), self._uow_factory() as uow:
            job = uow.jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)

            # Validate payload changes before anything is written
            staged = job.with_changes(changes) if changes else job

            result = StateMachine(uow.audit_log).transition(staged, to_status, actor, note)
            if not result.success:
                return result

            uow.jobs.update(result.job, expected_status=job.status)

        logger.info(
            f"Job {job_id} moved {job.status.value} → {result.job.status.value} by {actor.value}"
        )
        return result

    # ------------------------------------------------------------------
    # Boss review actions
    # ------------------------------------------------------------------

    def approve(self, job_id: str, note: str | None = None) -> TransitionResult:
        """Approve a reviewed tool for deployment (READY_FOR_REVIEW → DEPLOY_REQUESTED)."""
        note = note.strip() if note and note.strip() else None
        return self.apply_transition(job_id, JobStatus.DEPLOY_REQUESTED, ActorType.BOSS, note)

    def reject(self, job_id: str, note: str | None) -> TransitionResult:
        """Reject a reviewed tool (READY_FOR_REVIEW → REJECTED). A note is required."""
        if not note or not note.strip():
            return TransitionResult.failed(
                TransitionErrorKind.NOTE_REQUIRED, "Note is required for this action.", job_id
            )
        return self.apply_transition(job_id, JobStatus.REJECTED, ActorType.BOSS, note.strip())

    def request_revision(self, job_id: str, revision_notes: str | None) -> TransitionResult:
        """
        Send a reviewed tool back for changes (READY_FOR_REVIEW → REVISION_REQUESTED).

        The notes are stored on the job for the Factory and echoed in the
        audit note.
        """
        if not revision_notes or not revision_notes.strip():
            return TransitionResult.failed(
                TransitionErrorKind.NOTE_REQUIRED, "Revision notes are required", job_id
            )
        notes = revision_notes.strip()
        return self.apply_transition(
            job_id,
            JobStatus.REVISION_REQUESTED,
            ActorType.BOSS,
            note=f"Revision requested: {notes}",
            changes={"revision_notes": notes},
        )

    # ------------------------------------------------------------------
    # Factory outcomes
    # ------------------------------------------------------------------

    def record_submission(
        self,
        job_id: str,
        succeeded: bool,
        failure_reason: str | None = None,
    ) -> TransitionResult:
        """
        Record the result of sending a job to the Factory.

        Success moves DRAFT (or REVISION_REQUESTED) to SENT; failure moves
        DRAFT to FAILED_SEND and keeps the reason on the job.
        """
        now = utcnow()
        if succeeded:
            return self.apply_transition(
                job_id,
                JobStatus.SENT,
                ActorType.SYSTEM,
                changes={"submitted_at": now, "last_attempt_at": now, "failure_reason": None},
            )

        reason = (failure_reason or "Submission failed")[:MAX_FAILURE_REASON_CHARS]
        return self.apply_transition(
            job_id,
            JobStatus.FAILED_SEND,
            ActorType.SYSTEM,
            note=reason,
            changes={"last_attempt_at": now, "failure_reason": reason},
        )

    def record_factory_result(
        self,
        job_id: str,
        passed: bool,
        *,
        tool_id: str | None = None,
        tool_html: str | None = None,
        qa_report: QAReport | None = None,
        revision_history: list[RevisionHistoryEntry] | None = None,
        revision_applied: str | None = None,
    ) -> TransitionResult:
        """
        Record the Factory's callback for a SENT job.

        A passing QA run makes the tool ready for review; a failing one
        ends the job in FACTORY_FAILED.
        """
        changes: dict[str, Any] = {
            "qa_status": QAStatus.PASS if passed else QAStatus.FAIL,
            "callback_received_at": utcnow(),
        }
        if tool_id is not None:
            changes["tool_id"] = tool_id
        if tool_html is not None:
            changes["tool_html"] = tool_html
        if qa_report is not None:
            changes["qa_report"] = qa_report
        if revision_history:
            changes["revision_history"] = revision_history
            changes["revision_count"] = len(revision_history)
        if revision_applied is not None:
            changes["revision_applied"] = revision_applied

        to_status = JobStatus.READY_FOR_REVIEW if passed else JobStatus.FACTORY_FAILED
        return self.apply_transition(job_id, to_status, ActorType.FACTORY, changes=changes)

    def mark_deployed(self, job_id: str, note: str | None = None) -> TransitionResult:
        """Record that an approved tool went live (DEPLOY_REQUESTED → DEPLOYED)."""
        return self.apply_transition(job_id, JobStatus.DEPLOYED, ActorType.SYSTEM, note)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Job:
        """
        Get a job by ID.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        with self._uow_factory() as uow:
            job = uow.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self) -> list[Job]:
        """All jobs, newest first."""
        with self._uow_factory() as uow:
            return uow.jobs.list_all()

    def list_inbox(self) -> list[Job]:
        """Jobs waiting for the Boss (READY_FOR_REVIEW only), newest first."""
        with self._uow_factory() as uow:
            jobs = uow.jobs.list_by_status(JobStatus.READY_FOR_REVIEW)
        logger.debug(f"Inbox request: {len(jobs)} jobs ready for review")
        return jobs

    def get_audit_log(
        self,
        job_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> AuditLogPage:
        """
        Get one page of a job's audit trail, oldest first.

        Raises:
            JobNotFoundError: If the job has no history and no stored snapshot.
        """
        with self._uow_factory() as uow:
            query = AuditQueryService(uow.audit_log)
            found = query.exists_for_job(job_id) or uow.jobs.get(job_id) is not None
            audit_page = query.get_audit_log(job_id, page=page, limit=limit) if found else None

        if audit_page is None:
            raise JobNotFoundError(job_id)
        return audit_page
