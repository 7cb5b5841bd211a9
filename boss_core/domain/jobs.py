"""
Job domain models for Boss Office.

This module defines the Job entity and its closed enumerations:
- JobStatus: The review lifecycle a job moves through
- FileType: Supported upload formats
- QAStatus / QAReport: Quality results reported by the Factory
- Job: Immutable snapshot of a job; status changes produce a new snapshot
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MB
MAX_TOOL_HTML_CHARS = 10 * 1024 * 1024
MAX_FAILURE_REASON_CHARS = 500


def utcnow() -> datetime:
    """Timezone-aware server clock used for every server-assigned instant."""
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """
    Job lifecycle states.

    Legal moves between them live in app.jobs.transitions.
    """

    DRAFT = "DRAFT"  # Created, not yet sent
    SENT = "SENT"  # Accepted by the Factory
    FAILED_SEND = "FAILED_SEND"  # Submission to the Factory failed (terminal)
    FACTORY_FAILED = "FACTORY_FAILED"  # Factory reported a failed QA run (terminal)
    READY_FOR_REVIEW = "READY_FOR_REVIEW"  # Tool generated, waiting for the Boss
    REVISION_REQUESTED = "REVISION_REQUESTED"  # Boss asked for changes
    DEPLOY_REQUESTED = "DEPLOY_REQUESTED"  # Boss approved the tool
    DEPLOYED = "DEPLOYED"  # Tool is live (terminal)
    REJECTED = "REJECTED"  # Boss rejected the tool (terminal)


class FileType(str, Enum):
    """Supported upload formats."""

    PDF = "PDF"
    DOCX = "DOCX"
    TXT = "TXT"
    MD = "MD"


class QAStatus(str, Enum):
    """QA verdict reported by the Factory."""

    PASS = "PASS"
    FAIL = "FAIL"


class QAReport(BaseModel):
    """QA report attached to a generated tool."""

    score: float | None = None
    passed_checks: list[str] = Field(default_factory=list)
    failed_checks: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    notes: str | None = None


class RevisionHistoryEntry(BaseModel):
    """One QA revision attempt made by the Factory before handing the tool over."""

    attempt: int = Field(ge=1)
    score: float
    passed: bool
    failed_checks: list[str] = Field(default_factory=list)
    recommendations: list[str] | None = None


class Job(BaseModel):
    """
    A document upload progressing through generation and review.

    Snapshots are frozen. The state machine only ever reads `job_id` and
    `status` and hands back a copy with `status` replaced; every other field
    is payload owned by the job service.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    job_id: str = Field(min_length=1)

    # Upload
    original_filename: str = Field(max_length=255)
    file_type: FileType
    file_size_bytes: int = Field(ge=1, le=MAX_FILE_SIZE_BYTES)
    file_storage_key: str
    created_at: datetime = Field(default_factory=utcnow)

    # State
    status: JobStatus = JobStatus.DRAFT

    # Factory submission
    submitted_at: datetime | None = None
    last_attempt_at: datetime | None = None
    failure_reason: str | None = Field(None, max_length=MAX_FAILURE_REASON_CHARS)

    # Factory callback
    tool_id: str | None = None
    tool_html: str | None = Field(None, max_length=MAX_TOOL_HTML_CHARS)
    qa_status: QAStatus | None = None
    qa_report: QAReport | None = None
    callback_received_at: datetime | None = None

    # QA revision loop
    revision_count: int | None = None
    revision_history: list[RevisionHistoryEntry] | None = None

    # Boss revision requests
    revision_notes: str | None = None
    revision_applied: str | None = None

    def with_status(self, status: JobStatus) -> Job:
        """Return a copy of this snapshot with only `status` replaced."""
        return self.model_copy(update={"status": status})

    def with_changes(self, changes: dict[str, Any]) -> Job:
        """Return a validated copy of this snapshot with payload fields replaced."""
        if "job_id" in changes and changes["job_id"] != self.job_id:
            raise ValueError("job_id is immutable once assigned")
        data = self.model_dump()
        data.update(changes)
        return Job.model_validate(data)


def is_valid_file_type(value: str) -> bool:
    """Check whether a string names a supported FileType."""
    return value in {member.value for member in FileType}


def is_valid_job_status(value: str) -> bool:
    """Check whether a string names a JobStatus."""
    return value in {member.value for member in JobStatus}


def file_type_from_filename(filename: str) -> FileType | None:
    """Derive the FileType from a filename extension, or None if unsupported."""
    _, dot, extension = filename.rpartition(".")
    if not dot:
        return None
    extension = extension.upper()
    return FileType(extension) if is_valid_file_type(extension) else None


def create_job(
    *,
    job_id: str,
    original_filename: str,
    file_type: FileType,
    file_size_bytes: int,
    file_storage_key: str,
) -> Job:
    """Build a new DRAFT job snapshot."""
    return Job(
        job_id=job_id,
        original_filename=original_filename,
        file_type=file_type,
        file_size_bytes=file_size_bytes,
        file_storage_key=file_storage_key,
        created_at=utcnow(),
        status=JobStatus.DRAFT,
    )


_LIST_FIELDS = (
    "job_id",
    "original_filename",
    "file_type",
    "file_size_bytes",
    "created_at",
    "status",
    "submitted_at",
    "last_attempt_at",
    "failure_reason",
    "tool_id",
    "qa_status",
    "callback_received_at",
)


def job_to_response(job: Job) -> dict[str, Any]:
    """
    Project a job for list responses.

    Optional fields are omitted when unset. `tool_html` and `qa_report` are
    never included here (too large for lists); see job_to_detail.
    """
    data = job.model_dump(mode="json", include=set(_LIST_FIELDS))
    return {key: data[key] for key in _LIST_FIELDS if data.get(key) is not None}


def job_to_detail(job: Job) -> dict[str, Any]:
    """Project a job for the preview view, including the tool and its QA report."""
    response = job_to_response(job)
    response["tool_html"] = job.tool_html
    response["qa_report"] = job.qa_report.model_dump(mode="json") if job.qa_report else None
    return response
