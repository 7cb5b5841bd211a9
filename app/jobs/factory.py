"""
Job module factory.

This module provides factory functions to create instances of the job
services for the configured storage backend, handling dependency injection.
"""

from __future__ import annotations

from functools import lru_cache, partial
from typing import Callable

from app.jobs.audit_query import AuditQueryService
from app.jobs.job_service import JobLockRegistry, JobService
from app.jobs.protocols import AuditLogStore, UnitOfWork
from app.jobs.services.memory_store import (
    InMemoryAuditLogStore,
    InMemoryJobRepository,
    InMemoryUnitOfWork,
)
from app.jobs.services.postgres_store import PostgresAuditLogStore, PostgresUnitOfWork
from app.jobs.state_machine import StateMachine
from boss_core.config import settings


@lru_cache()
def get_memory_audit_log_store() -> InMemoryAuditLogStore:
    """Process-wide in-memory audit store."""
    return InMemoryAuditLogStore()


@lru_cache()
def get_memory_job_repository() -> InMemoryJobRepository:
    """Process-wide in-memory job repository."""
    return InMemoryJobRepository()


@lru_cache()
def get_job_locks() -> JobLockRegistry:
    """Process-wide per-job locks, shared by every JobService."""
    return JobLockRegistry()


def _uses_postgres() -> bool:
    return settings.STORAGE_BACKEND == "postgres"


def get_audit_log_store() -> AuditLogStore:
    """Get the audit store for the configured backend."""
    if _uses_postgres():
        return PostgresAuditLogStore()
    return get_memory_audit_log_store()


def get_unit_of_work_factory() -> Callable[[], UnitOfWork]:
    """Get a callable that opens a unit of work on the configured backend."""
    if _uses_postgres():
        return PostgresUnitOfWork
    return partial(
        InMemoryUnitOfWork,
        get_memory_job_repository(),
        get_memory_audit_log_store(),
    )


def get_state_machine() -> StateMachine:
    """Get a state machine writing to the configured audit store."""
    return StateMachine(get_audit_log_store())


@lru_cache()
def get_job_service() -> JobService:
    """Get the job service instance."""
    return JobService(get_unit_of_work_factory(), locks=get_job_locks())


@lru_cache()
def get_audit_query_service() -> AuditQueryService:
    """Get the audit query service instance."""
    return AuditQueryService(get_audit_log_store())
