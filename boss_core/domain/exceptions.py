"""
Standard exceptions for Boss Office.

Job errors are also ServiceErrors, so callers can branch on `retryable`
without knowing the concrete class. Rejected status transitions are NOT
exceptions: the state machine reports them as a failed TransitionResult.
"""

from boss_core.runtime.errors import ErrorCode, RetryableError, TerminalError


class BossOfficeError(Exception):
    """Base exception for all Boss Office errors."""
    pass


class JobError(BossOfficeError):
    """Base exception for job errors."""
    pass


class JobNotFoundError(JobError, TerminalError):
    """Raised when a job cannot be found in the repository."""

    def __init__(self, job_id: str):
        TerminalError.__init__(
            self,
            code=ErrorCode.NOT_FOUND,
            message_safe=f"Job not found: {job_id}",
            job_id=job_id,
        )


class ConcurrentTransitionError(JobError, RetryableError):
    """Raised when a job's stored status changed underneath a transition."""

    def __init__(self, job_id: str, expected_status: str, actual_status: str | None):
        self.expected_status = expected_status
        self.actual_status = actual_status
        RetryableError.__init__(
            self,
            code=ErrorCode.CONFLICT,
            message_safe=(
                f"Job {job_id} status changed concurrently: "
                f"expected {expected_status}, found {actual_status}"
            ),
            job_id=job_id,
        )
