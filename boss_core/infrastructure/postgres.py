"""
PostgreSQL connections for the job store.

Every connection is tagged with SERVICE_NAME as its application_name so job
transactions can be told apart in pg_stat_activity.
"""

from __future__ import annotations

import psycopg
from loguru import logger

from boss_core.config import settings


def get_db_connection(dsn: str | None = None) -> psycopg.Connection:
    """
    Open a PostgreSQL connection (autocommit off).

    Used either as a context manager, which commits or rolls back and then
    closes, or held open by PostgresUnitOfWork for one job transaction.

    Usage:
        with get_db_connection() as conn:
            conn.execute("SELECT count(*) FROM audit_log_entries")

    Args:
        dsn: Connection string. Defaults to settings.POSTGRES_DSN.

    Raises:
        psycopg.OperationalError: If the server cannot be reached.
    """
    try:
        conn = psycopg.connect(dsn or settings.POSTGRES_DSN, application_name=settings.SERVICE_NAME)
    except psycopg.OperationalError as e:
        logger.error(f"Cannot reach PostgreSQL for {settings.SERVICE_NAME}: {e}")
        raise

    logger.debug(f"Opened PostgreSQL connection for {settings.SERVICE_NAME}")
    return conn
