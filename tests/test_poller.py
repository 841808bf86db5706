"""Tests for the status poller and its backoff schedule."""

import itertools
import logging
from datetime import date

import pytest

from mail_forwarder.compliance.exceptions import (
    AuthenticationFailed,
    ComplianceHTTPError,
    ComplianceTimeoutError,
)
from mail_forwarder.config.models import PollingConfig
from mail_forwarder.domain.models import Job, JobKind, JobStatus, RunMode, SearchRequest
from mail_forwarder.forwarding.exceptions import PollTimedOut, RemoteJobFailed
from mail_forwarder.forwarding.poller import JobPoller, backoff_intervals
from tests.helpers.fakes import FakeClock, FakeComplianceClient, report

URL = "https://graph.test/operation"


@pytest.fixture
def request_():
    return SearchRequest(
        source_scope="a@x.com",
        date_range_start=date(2024, 6, 1),
        date_range_end=date(2024, 6, 30),
    )


@pytest.fixture
def job(request_):
    return Job(id="search-1", kind=JobKind.SEARCH, request=request_)


def make_poller(client, clock=None, **config):
    return JobPoller(client, PollingConfig(**config), clock or FakeClock())


class TestBackoffIntervals:
    def test_default_schedule(self):
        intervals = backoff_intervals()
        assert list(itertools.islice(intervals, 8)) == [5, 10, 20, 40, 60, 60, 60, 60]

    @pytest.mark.parametrize(
        "initial,multiplier,maximum",
        [(5, 2, 60), (1, 3, 100), (2, 1.5, 30), (10, 1, 10), (7, 2, 5)],
    )
    def test_interval_formula(self, initial, multiplier, maximum):
        intervals = list(itertools.islice(backoff_intervals(initial, multiplier, maximum), 50))

        for n, interval in enumerate(intervals):
            assert interval == pytest.approx(min(initial * multiplier**n, maximum))

    def test_cap_never_overflows(self):
        intervals = backoff_intervals(5, 10, 60)
        # Far past the point where 5 * 10**n would overflow a float
        assert list(itertools.islice(intervals, 500))[-1] == 60


class TestAwaitCompletion:
    """Test polling a live job to a terminal status."""

    def test_completes_after_running(self, job):
        client = FakeComplianceClient(
            statuses=[
                report(JobStatus.RUNNING),
                report(JobStatus.RUNNING),
                report(JobStatus.COMPLETED, item_count=42, size=1024),
            ]
        )
        clock = FakeClock()

        completed = make_poller(client, clock).await_completion(job, RunMode.LIVE, 300)

        assert completed.status == JobStatus.COMPLETED
        assert completed.item_count == 42
        assert completed.total_size_bytes == 1024
        assert completed.request == job.request
        assert client.status_checks == ["search-1"] * 3
        assert clock.sleeps == [5, 10]

    def test_remote_failure(self, job):
        failed_report = report(JobStatus.FAILED)
        failed_report = failed_report.model_copy(update={"detail": "mailbox not found"})
        client = FakeComplianceClient(statuses=[report(JobStatus.RUNNING), failed_report])

        with pytest.raises(RemoteJobFailed, match="mailbox not found") as exc_info:
            make_poller(client).await_completion(job, RunMode.LIVE, 300)

        assert exc_info.value.job.status == JobStatus.FAILED

    def test_timeout(self, job):
        """A job that never finishes stops exactly at the deadline."""
        client = FakeComplianceClient(statuses=[report(JobStatus.RUNNING)])
        clock = FakeClock()

        with pytest.raises(PollTimedOut) as exc_info:
            make_poller(client, clock).await_completion(job, RunMode.LIVE, 300)

        assert exc_info.value.job.status == JobStatus.TIMED_OUT
        assert exc_info.value.timeout_seconds == 300
        # The last sleep is clamped to the remaining time
        assert clock.sleeps == [5, 10, 20, 40, 60, 60, 60, 45]
        assert clock.current == 300
        assert len(client.status_checks) == 9

    def test_no_sleep_past_deadline(self, job):
        client = FakeComplianceClient(statuses=[report(JobStatus.RUNNING)])
        clock = FakeClock()

        with pytest.raises(PollTimedOut):
            make_poller(client, clock).await_completion(job, RunMode.LIVE, 12)

        assert clock.sleeps == [5, 7]
        assert sum(clock.sleeps) == 12

    def test_transient_errors_are_tolerated(self, job):
        client = FakeComplianceClient(
            statuses=[
                report(JobStatus.RUNNING),
                ComplianceHTTPError("throttled", 429, URL),
                ComplianceTimeoutError("slow", URL),
                report(JobStatus.COMPLETED, item_count=3),
            ]
        )
        clock = FakeClock()

        completed = make_poller(client, clock).await_completion(job, RunMode.LIVE, 300)

        assert completed.status == JobStatus.COMPLETED
        assert clock.sleeps == [5, 10, 20]

    def test_error_counter_resets_after_success(self, job):
        error = ComplianceHTTPError("unavailable", 503, URL)
        client = FakeComplianceClient(
            statuses=[
                error,
                error,
                report(JobStatus.RUNNING),
                error,
                error,
                report(JobStatus.COMPLETED),
            ]
        )

        completed = make_poller(client, max_consecutive_status_errors=3).await_completion(
            job, RunMode.LIVE, 3600
        )
        assert completed.status == JobStatus.COMPLETED

    def test_too_many_consecutive_errors(self, job):
        client = FakeComplianceClient(statuses=[ComplianceHTTPError("unavailable", 503, URL)])
        clock = FakeClock()

        with pytest.raises(RemoteJobFailed, match="3 consecutive") as exc_info:
            make_poller(client, clock, max_consecutive_status_errors=3).await_completion(
                job, RunMode.LIVE, 300
            )

        assert exc_info.value.job.status == JobStatus.FAILED
        assert len(client.status_checks) == 3
        assert clock.sleeps == [5, 10]

    def test_permanent_error_fails_immediately(self, job):
        client = FakeComplianceClient(statuses=[ComplianceHTTPError("bad request", 400, URL)])
        clock = FakeClock()

        with pytest.raises(RemoteJobFailed, match="rejected") as exc_info:
            make_poller(client, clock).await_completion(job, RunMode.LIVE, 300)

        assert isinstance(exc_info.value.__cause__, ComplianceHTTPError)
        assert len(client.status_checks) == 1
        assert clock.sleeps == []

    def test_authentication_failure_propagates(self, job):
        client = FakeComplianceClient(statuses=[AuthenticationFailed("token expired")])

        with pytest.raises(AuthenticationFailed):
            make_poller(client).await_completion(job, RunMode.LIVE, 300)

    def test_stale_status_is_ignored(self, job, caplog):
        client = FakeComplianceClient(
            statuses=[
                report(JobStatus.RUNNING),
                report(JobStatus.NOT_STARTED),
                report(JobStatus.COMPLETED, item_count=1),
            ]
        )

        with caplog.at_level(logging.WARNING):
            completed = make_poller(client).await_completion(job, RunMode.LIVE, 300)

        assert completed.status == JobStatus.COMPLETED
        stale = [r for r in caplog.records if getattr(r, "event", None) == "poll.status.stale"]
        assert len(stale) == 1
        assert stale[0].reported_status == "not-started"

    def test_export_action_uses_action_status(self, request_):
        action = Job(
            id="action-1", kind=JobKind.EXPORT_ACTION, request=request_, parent_id="search-1"
        )
        client = FakeComplianceClient(action_statuses=[report(JobStatus.COMPLETED)])

        completed = make_poller(client).await_completion(action, RunMode.LIVE, 300)

        assert completed.status == JobStatus.COMPLETED
        assert client.action_checks == ["action-1"]
        assert client.status_checks == []

    def test_already_completed_job_is_returned(self, job):
        client = FakeComplianceClient()
        done = job.advance(JobStatus.COMPLETED, item_count=4)

        assert make_poller(client).await_completion(done, RunMode.LIVE, 300) is done
        assert client.call_count == 0

    def test_already_failed_job_raises(self, job):
        client = FakeComplianceClient()

        with pytest.raises(RemoteJobFailed):
            make_poller(client).await_completion(
                job.advance(JobStatus.FAILED), RunMode.LIVE, 300
            )
        assert client.call_count == 0

    def test_live_mode_without_client(self, job):
        with pytest.raises(RemoteJobFailed, match="No compliance client"):
            JobPoller(None, clock=FakeClock()).await_completion(job, RunMode.LIVE, 300)


class TestSimulatedPolling:
    def test_test_mode_completes_without_remote_calls(self, job):
        client = FakeComplianceClient()
        clock = FakeClock()
        running = job.advance(JobStatus.RUNNING)

        completed = make_poller(client, clock).await_completion(running, RunMode.TEST, 300)

        assert completed.status == JobStatus.COMPLETED
        assert completed.item_count == 0
        assert completed.total_size_bytes == 0
        assert client.call_count == 0
        assert clock.sleeps == []
