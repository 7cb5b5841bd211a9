# Job persistence backends

from .memory_store import (
    InMemoryAuditLogStore,
    InMemoryJobRepository,
    InMemoryUnitOfWork,
    StagedAuditLog,
)
from .postgres_store import PostgresAuditLogStore, PostgresJobRepository, PostgresUnitOfWork

__all__ = [
    # In-memory backend
    "InMemoryAuditLogStore",
    "InMemoryJobRepository",
    "InMemoryUnitOfWork",
    "StagedAuditLog",
    # PostgreSQL backend
    "PostgresAuditLogStore",
    "PostgresJobRepository",
    "PostgresUnitOfWork",
]
