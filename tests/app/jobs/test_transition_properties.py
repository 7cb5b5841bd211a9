"""
Property tests for the state machine and audit pagination.
"""

from hypothesis import HealthCheck, given, settings, strategies as st

from app.jobs.audit_query import AuditQueryService, clamp_limit
from app.jobs.services.memory_store import InMemoryAuditLogStore
from app.jobs.state_machine import StateMachine
from app.jobs.transitions import is_allowed
from boss_core.domain.audit import ActorType
from boss_core.domain.jobs import FileType, Job, JobStatus

statuses = st.sampled_from(list(JobStatus))
actors = st.sampled_from(list(ActorType))


class TestRandomWalks:

    @given(requests=st.lists(st.tuples(statuses, actors), max_size=30))
    def test_log_replays_to_current_status(self, requests):
        """Property: for any request sequence the log chains and ends at the job's status."""
        store = InMemoryAuditLogStore()
        machine = StateMachine(store)
        machine.create_initial("job-p")
        job = new_job()
        successes = 0

        for to_status, actor in requests:
            expected = is_allowed(job.status, to_status)
            result = machine.transition(job, to_status, actor)
            assert result.success is expected
            if result.success:
                job = result.job
                successes += 1

        entries = store.query_by_job("job-p")
        assert len(entries) == successes + 1
        assert entries[0].from_status is None
        for previous, current in zip(entries, entries[1:]):
            assert current.from_status == previous.to_status
            assert is_allowed(current.from_status, current.to_status)
        assert entries[-1].to_status == job.status


class TestPaginationLaws:

    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow])
    @given(
        entry_count=st.integers(min_value=0, max_value=40),
        limit=st.integers(min_value=-5, max_value=150),
    )
    def test_pages_concatenate_to_full_history(self, entry_count, limit):
        """Property: walking every page returns each entry once, in order."""
        store = InMemoryAuditLogStore()
        machine = StateMachine(store)
        for _ in range(entry_count):
            machine.create_initial("job-q")
        query = AuditQueryService(store)

        first = query.get_audit_log("job-q", 1, limit)
        walked = list(first.entries)
        for page in range(2, first.pagination.pages + 1):
            walked.extend(query.get_audit_log("job-q", page, limit).entries)

        assert first.pagination.total == entry_count
        assert first.pagination.limit == clamp_limit(limit)
        assert [e.id for e in walked] == [e.id for e in store.query_by_job("job-q")]


# --- Helpers ---


def new_job():
    return Job(
        job_id="job-p",
        original_filename="brief.txt",
        file_type=FileType.TXT,
        file_size_bytes=10,
        file_storage_key="uploads/job-p/brief.txt",
    )
