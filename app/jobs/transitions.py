"""
State transition table for job statuses.

Job lifecycle:
    (new) → DRAFT → SENT → READY_FOR_REVIEW → DEPLOY_REQUESTED → DEPLOYED
                  ↘ FAILED_SEND   ↘ FACTORY_FAILED
    READY_FOR_REVIEW → REVISION_REQUESTED → SENT
    READY_FOR_REVIEW → REJECTED

INVARIANT: Terminal states (FAILED_SEND, FACTORY_FAILED, DEPLOYED, REJECTED)
have no outgoing edges. A job never transitions to its own status.

The table is immutable module data and safe to read from any thread.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from boss_core.domain.jobs import JobStatus

# Key None is the pseudo-state "job does not exist yet". Targets are listed in
# the order error messages name them.
VALID_TRANSITIONS: Mapping[Optional[JobStatus], Tuple[JobStatus, ...]] = MappingProxyType({
    None: (JobStatus.DRAFT,),
    JobStatus.DRAFT: (JobStatus.SENT, JobStatus.FAILED_SEND),
    JobStatus.SENT: (JobStatus.READY_FOR_REVIEW, JobStatus.FACTORY_FAILED),
    JobStatus.READY_FOR_REVIEW: (
        JobStatus.DEPLOY_REQUESTED,
        JobStatus.REVISION_REQUESTED,
        JobStatus.REJECTED,
    ),
    JobStatus.DEPLOY_REQUESTED: (JobStatus.DEPLOYED,),
    JobStatus.REVISION_REQUESTED: (JobStatus.SENT,),
    # Terminal states - no outgoing transitions
    JobStatus.FAILED_SEND: (),
    JobStatus.FACTORY_FAILED: (),
    JobStatus.DEPLOYED: (),
    JobStatus.REJECTED: (),
})

TERMINAL_JOB_STATES: FrozenSet[JobStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items()
    if status is not None and not targets
)


def allowed_targets(from_status: Optional[JobStatus]) -> list[JobStatus]:
    """
    Get the statuses reachable from `from_status`, in table order.

    Unknown statuses have no targets.
    """
    return list(VALID_TRANSITIONS.get(from_status, ()))


def is_allowed(from_status: Optional[JobStatus], to_status: JobStatus) -> bool:
    """
    Check if a job status transition is legal.

    Args:
        from_status: Current job status (None for a job being created)
        to_status: Target job status

    Returns:
        True if the edge is in the transition table, False otherwise
    """
    targets = VALID_TRANSITIONS.get(from_status)
    if targets is None:
        return False
    return to_status in targets


def is_terminal(status: JobStatus) -> bool:
    """Check if a job status has no outgoing transitions."""
    return status in TERMINAL_JOB_STATES


def describe_invalid_transition(
    from_status: Optional[JobStatus], to_status: JobStatus
) -> str:
    """
    Build the human-readable reason for a rejected transition.

    Names the allowed targets, or says the current status is terminal.
    """
    from_label = from_status.value if from_status is not None else "null"
    targets = allowed_targets(from_status)

    if not targets:
        return f"Status {from_label} is terminal and cannot transition to any other status"

    allowed = ", ".join(target.value for target in targets)
    return f"Invalid transition: {from_label} → {to_status.value}. Allowed: {allowed}"
