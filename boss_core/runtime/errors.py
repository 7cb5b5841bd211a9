"""
Service errors for the job core, classified by whether retrying can help.

A lost compare-and-set on a job's status is retryable: reloading the job
lets the state machine decide again. A refused transition or a missing job
is terminal.
"""

from __future__ import annotations

import uuid


class ServiceError(Exception):
    """Job core error with a machine-readable code.

    - code: One of ErrorCode
    - message_safe: Human-readable message safe for logs/users
    - message_debug: Detailed debug info (not shown to users)
    - retryable: Whether repeating the operation can succeed
    - cause: The underlying exception, if any
    - job_id: The job the failure concerns, if known
    - debug_id: Short ID for correlating log lines
    """

    def __init__(
        self,
        code: str,
        message_safe: str,
        message_debug: str | None = None,
        retryable: bool = False,
        cause: Exception | None = None,
        job_id: str | None = None,
        debug_id: str | None = None,
    ):
        super().__init__(message_safe)
        self.code = code
        self.message_safe = message_safe
        self.message_debug = message_debug
        self.retryable = retryable
        self.cause = cause
        self.job_id = job_id
        self.debug_id = debug_id or str(uuid.uuid4())[:8]

    def __str__(self) -> str:
        return f"[{self.code}] {self.message_safe}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"job_id={self.job_id!r}, "
            f"retryable={self.retryable}, "
            f"debug_id={self.debug_id!r})"
        )


class RetryableError(ServiceError):
    """A failure that a fresh attempt may not hit, e.g. a concurrent status change."""

    def __init__(
        self,
        code: str,
        message_safe: str,
        message_debug: str | None = None,
        cause: Exception | None = None,
        job_id: str | None = None,
        debug_id: str | None = None,
    ):
        super().__init__(
            code=code,
            message_safe=message_safe,
            message_debug=message_debug,
            retryable=True,
            cause=cause,
            job_id=job_id,
            debug_id=debug_id,
        )


class TerminalError(ServiceError):
    """A failure that repeats on every attempt: illegal edge, bad note, unknown job."""

    def __init__(
        self,
        code: str,
        message_safe: str,
        message_debug: str | None = None,
        cause: Exception | None = None,
        job_id: str | None = None,
        debug_id: str | None = None,
    ):
        super().__init__(
            code=code,
            message_safe=message_safe,
            message_debug=message_debug,
            retryable=False,
            cause=cause,
            job_id=job_id,
            debug_id=debug_id,
        )


class ErrorCode:
    """Error codes raised by the job core."""

    # Refused transitions
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOTE_TOO_LONG = "NOTE_TOO_LONG"
    NOTE_REQUIRED = "NOTE_REQUIRED"

    # Persistence
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
