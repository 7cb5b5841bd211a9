#!/usr/bin/env python3
"""
Smoke test for the Boss Office job core.

Drives one job through a full review cycle against the configured storage
backend and prints its audit trail:
1. Create job (null → DRAFT)
2. Submit to the Factory (DRAFT → SENT)
3. Factory callback with a passing QA run (SENT → READY_FOR_REVIEW)
4. Boss requests a revision, the job is resent and comes back
5. Boss approves and the tool is deployed

Usage:
    python scripts/smoke_lifecycle.py
    STORAGE_BACKEND=postgres python scripts/smoke_lifecycle.py

Prerequisites (postgres backend only):
    - Tables created from scripts/init-db.sql
"""

import sys
import time

from app.jobs.factory import get_job_service
from boss_core.domain.jobs import FileType, QAReport
from boss_core.logging import setup_logging


class Colors:
    GREEN = "\033[92m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


def log(msg: str, color: str = ""):
    """Print with timestamp and optional color."""
    timestamp = time.strftime("%H:%M:%S")
    if color:
        print(f"{color}[{timestamp}] {msg}{Colors.RESET}")
    else:
        print(f"[{timestamp}] {msg}")


def success(msg: str):
    log(f"✓ {msg}", Colors.GREEN)


def error(msg: str):
    log(f"✗ {msg}", Colors.RED)


def info(msg: str):
    log(f"→ {msg}", Colors.BLUE)


def section(title: str):
    print(f"\n{Colors.BOLD}{'='*60}{Colors.RESET}")
    print(f"{Colors.BOLD}{title}{Colors.RESET}")
    print(f"{Colors.BOLD}{'='*60}{Colors.RESET}\n")


def step(label: str, result) -> bool:
    if result.success:
        success(f"{label}: now {result.job.status.value}")
        return True
    error(f"{label}: {result.error_kind.value} - {result.error}")
    return False


def run_steps(steps) -> bool:
    return all(step(label, action()) for label, action in steps)


def main() -> int:
    setup_logging()
    service = get_job_service()

    section("1. Create and submit")
    job = service.create_job(
        original_filename="pricing-brief.pdf",
        file_type=FileType.PDF,
        file_size_bytes=48_213,
        file_storage_key="uploads/smoke/pricing-brief.pdf",
    )
    info(f"Created job {job.job_id}")
    if not run_steps([
        ("Submit", lambda: service.record_submission(job.job_id, succeeded=True)),
        (
            "Factory callback",
            lambda: service.record_factory_result(
                job.job_id,
                passed=True,
                tool_id="tool-smoke",
                tool_html="<html><body>Pricing calculator</body></html>",
                qa_report=QAReport(score=8.4, passed_checks=["layout", "copy"]),
            ),
        ),
    ]):
        return 1

    section("2. Review cycle")
    if not run_steps([
        ("Request revision", lambda: service.request_revision(job.job_id, "Add a VAT toggle")),
        ("Resubmit", lambda: service.record_submission(job.job_id, succeeded=True)),
        ("Factory callback", lambda: service.record_factory_result(job.job_id, passed=True)),
        ("Approve", lambda: service.approve(job.job_id, note="Looks good")),
        ("Deploy", lambda: service.mark_deployed(job.job_id)),
    ]):
        return 1

    section("3. Audit trail")
    audit_page = service.get_audit_log(job.job_id)
    for entry in audit_page.entries:
        info(
            f"{entry.timestamp}  {entry.from_status or 'null'} → {entry.to_status}"
            f"  [{entry.actor}]  {entry.note or ''}"
        )
    success(f"{audit_page.pagination.total} entries recorded")
    return 0


if __name__ == "__main__":
    sys.exit(main())
