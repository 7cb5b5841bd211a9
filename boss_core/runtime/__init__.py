"""
Service runtime layer for Boss Office.

- ServiceError: Errors classified as retryable or terminal
- ErrorCode: Machine-readable codes for refused transitions and conflicts
- RetryPolicy / with_retry: Backoff for operations that lose a race
"""

from .errors import ErrorCode, RetryableError, ServiceError, TerminalError
from .retry import RetryPolicy, with_retry

__all__ = [
    "ErrorCode",
    "ServiceError",
    "RetryableError",
    "TerminalError",
    "RetryPolicy",
    "with_retry",
]
