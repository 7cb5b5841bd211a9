"""
Audit trail domain models.

Every job status change is recorded as exactly one AuditLogEntry. Entries
are facts: they are frozen once created and no code path updates or deletes
them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from boss_core.domain.jobs import JobStatus

NOTE_MAX_LENGTH = 1000


class ActorType(str, Enum):
    """
    Who initiated a transition.

    Always chosen by server-side code, never copied from client input.
    """

    BOSS = "BOSS"
    FACTORY = "FACTORY"
    SYSTEM = "SYSTEM"


class NewAuditLogEntry(BaseModel):
    """An audit entry before the store has assigned its id and timestamp."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    from_status: JobStatus | None = None
    to_status: JobStatus
    actor: ActorType
    note: str | None = Field(None, max_length=NOTE_MAX_LENGTH)


class AuditLogEntry(NewAuditLogEntry):
    """A stored audit entry."""

    id: str
    timestamp: datetime

    @property
    def transition_label(self) -> str:
        return f"{self.from_status.value if self.from_status else 'null'} → {self.to_status.value}"

    def to_response(self) -> AuditLogEntryResponse:
        """Public projection with stable field names and an ISO 8601 timestamp."""
        return AuditLogEntryResponse(
            id=self.id,
            job_id=self.job_id,
            from_status=self.from_status.value if self.from_status else None,
            to_status=self.to_status.value,
            timestamp=self.timestamp.isoformat(),
            actor=self.actor.value,
            note=self.note,
        )


class AuditLogEntryResponse(BaseModel):
    """Response model for a single audit entry."""

    id: str
    job_id: str
    from_status: str | None
    to_status: str
    timestamp: str
    actor: str
    note: str | None = None


class Pagination(BaseModel):
    """Pagination metadata for audit log pages."""

    page: int
    limit: int
    total: int
    pages: int


class AuditLogPage(BaseModel):
    """One page of a job's audit trail, oldest entry first."""

    entries: list[AuditLogEntryResponse]
    pagination: Pagination
