"""
Audit query service: paginated, read-only access to a job's audit trail.

Entries are always returned oldest first so a client can replay a job's
status history page by page.
"""

from __future__ import annotations

import math
import sys

from app.jobs.protocols import AuditLogStore
from boss_core.domain.audit import AuditLogPage, Pagination

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100


def _clamp(value: float, low: int, high: int, default: int) -> int:
    # Non-finite floats have no int(); NaN falls back to the default
    if isinstance(value, float):
        if math.isnan(value):
            return default
        if math.isinf(value):
            return high if value > 0 else low
    return min(max(low, int(value)), high)


def clamp_page(page: float) -> int:
    """Pages are 1-indexed; anything lower becomes page 1."""
    return _clamp(page, 1, sys.maxsize, 1)


def clamp_limit(limit: float) -> int:
    """Limits are kept within [1, MAX_PAGE_LIMIT]."""
    return _clamp(limit, 1, MAX_PAGE_LIMIT, DEFAULT_PAGE_LIMIT)


class AuditQueryService:
    """
    Read-only projection over an AuditLogStore.

    Out-of-range paging arguments are clamped rather than rejected; rejecting
    malformed query strings is the HTTP layer's job.
    """

    def __init__(self, audit_log: AuditLogStore):
        self.audit_log = audit_log

    def get_audit_log(
        self,
        job_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> AuditLogPage:
        """
        Get one page of a job's audit entries.

        Args:
            job_id: Job to read the trail for
            page: Page number (1-indexed), clamped to >= 1
            limit: Entries per page, clamped to [1, 100]

        Returns:
            AuditLogPage with the entries in chronological order and the
            pagination metadata. A page past the end has no entries.
        """
        safe_page = clamp_page(page)
        safe_limit = clamp_limit(limit)

        # sorted() is stable, so entries sharing a timestamp keep insertion order
        ordered = sorted(self.audit_log.query_by_job(job_id), key=lambda entry: entry.timestamp)

        total = len(ordered)
        skip = (safe_page - 1) * safe_limit
        page_entries = ordered[skip:skip + safe_limit]

        return AuditLogPage(
            entries=[entry.to_response() for entry in page_entries],
            pagination=Pagination(
                page=safe_page,
                limit=safe_limit,
                total=total,
                pages=math.ceil(total / safe_limit),
            ),
        )

    def exists_for_job(self, job_id: str) -> bool:
        """True if the job has any recorded history."""
        return self.audit_log.exists_for_job(job_id)
