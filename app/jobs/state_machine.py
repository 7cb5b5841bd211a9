"""
Job status state machine with audit logging.

This is the single authorized entry point for changing a job's status:
- Validates the requested edge against the transition table
- Validates the optional note
- Appends exactly one audit entry per successful transition
- Hands back a new job snapshot; persisting it is the caller's job
  (see JobService.apply_transition for the unit of work around both writes)

Rejected transitions are returned as a failed TransitionResult, never raised,
so call sites can branch without exception-based control flow.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from app.jobs.protocols import AuditLogStore
from app.jobs.transitions import describe_invalid_transition, is_allowed
from boss_core.domain.audit import NOTE_MAX_LENGTH, ActorType, AuditLogEntry, NewAuditLogEntry
from boss_core.domain.jobs import Job, JobStatus
from boss_core.runtime.errors import ErrorCode, TerminalError


class TransitionErrorKind(str, Enum):
    """Why a transition was refused."""

    INVALID_TRANSITION = ErrorCode.INVALID_TRANSITION
    NOTE_TOO_LONG = ErrorCode.NOTE_TOO_LONG
    NOTE_REQUIRED = ErrorCode.NOTE_REQUIRED


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of a status transition.

    On success `job` and `audit_entry` are set. On failure both are None and
    `error`/`error_kind` describe the refusal.
    """

    success: bool
    job: Job | None = None
    audit_entry: AuditLogEntry | None = None
    error: str | None = None
    error_kind: TransitionErrorKind | None = None
    job_id: str | None = None

    @classmethod
    def ok(cls, job: Job, audit_entry: AuditLogEntry) -> TransitionResult:
        return cls(success=True, job=job, audit_entry=audit_entry, job_id=job.job_id)

    @classmethod
    def failed(
        cls, kind: TransitionErrorKind, error: str, job_id: str | None = None
    ) -> TransitionResult:
        return cls(success=False, error=error, error_kind=kind, job_id=job_id)

    def raise_for_error(self) -> TransitionResult:
        """
        Raise a TerminalError if the transition failed.

        Returns:
            self, so callers can chain `.raise_for_error().job`.
        """
        if not self.success:
            raise TerminalError(
                code=self.error_kind.value, message_safe=self.error, job_id=self.job_id
            )
        return self


class StateMachine:
    """
    Validates and executes job status transitions.

    The machine owns no jobs; it reads `job_id` and `status` from the snapshot
    it is given and records the transition in the injected audit store.

    Usage:
        machine = StateMachine(InMemoryAuditLogStore())
        machine.create_initial("job-1")
        result = machine.transition(job, JobStatus.SENT, ActorType.SYSTEM)
        if result.success:
            repository.update(result.job, expected_status=job.status)
    """

    def __init__(self, audit_log: AuditLogStore):
        self.audit_log = audit_log

    def transition(
        self,
        job: Job,
        to_status: JobStatus,
        actor: ActorType,
        note: str | None = None,
    ) -> TransitionResult:
        """
        Execute a status transition with audit logging.

        Args:
            job: Current job snapshot
            to_status: Target status
            actor: Who initiated the transition (decided server-side)
            note: Optional note, at most 1000 characters

        Returns:
            TransitionResult with the updated job and its audit entry, or the
            reason the transition was refused. Nothing is written on refusal.

        Raises:
            TypeError: If `actor` is not an ActorType member
            ValueError: If `to_status` is not a JobStatus value
        """
        if not isinstance(actor, ActorType):
            raise TypeError(f"actor must be an ActorType, got {type(actor).__name__}")
        to_status = JobStatus(to_status)
        from_status = job.status

        if not is_allowed(from_status, to_status):
            error = describe_invalid_transition(from_status, to_status)
            logger.warning(f"[StateMachine] Refused transition for job {job.job_id}: {error}")
            return TransitionResult.failed(TransitionErrorKind.INVALID_TRANSITION, error, job.job_id)

        if note is not None and len(note) > NOTE_MAX_LENGTH:
            logger.warning(
                f"[StateMachine] Refused transition for job {job.job_id}: note has {len(note)} chars"
            )
            return TransitionResult.failed(
                TransitionErrorKind.NOTE_TOO_LONG,
                f"Note exceeds maximum length of {NOTE_MAX_LENGTH} characters",
                job.job_id,
            )

        audit_entry = self._record(
            NewAuditLogEntry(
                job_id=job.job_id,
                from_status=from_status,
                to_status=to_status,
                actor=actor,
                note=note,
            )
        )

        return TransitionResult.ok(job.with_status(to_status), audit_entry)

    def create_initial(self, job_id: str) -> AuditLogEntry:
        """
        Record the creation of a job (null → DRAFT).

        The creation edge is always legal, so the general validator is skipped.

        Args:
            job_id: The new job's ID

        Returns:
            The created audit entry
        """
        return self._record(
            NewAuditLogEntry(
                job_id=job_id,
                from_status=None,
                to_status=JobStatus.DRAFT,
                actor=ActorType.SYSTEM,
            )
        )

    def _record(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        stored = self.audit_log.append(entry)
        logger.info(
            f"[AuditLog] Entry {stored.id} created: job={stored.job_id} "
            f"transition={stored.transition_label} actor={stored.actor.value} "
            f"note={stored.note or 'N/A'}"
        )
        return stored
