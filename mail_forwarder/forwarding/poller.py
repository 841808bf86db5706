"""Status polling for remote jobs.

The poller is the only place a job's status moves. It checks status on an
exponential backoff schedule until the job completes, fails, or the deadline
passes. Reaching the deadline is always fatal for the run.
"""

from typing import Iterator, Optional

from mail_forwarder.compliance.base import ComplianceClient
from mail_forwarder.compliance.exceptions import AuthenticationFailed, ComplianceError, is_transient
from mail_forwarder.config.models import PollingConfig
from mail_forwarder.domain.models import (
    InvalidStatusTransition,
    Job,
    JobKind,
    JobStatus,
    JobStatusReport,
    RunMode,
)
from mail_forwarder.logging import get_logger

from .clock import Clock, SystemClock
from .exceptions import PollTimedOut, RemoteJobFailed

logger = get_logger(__name__, component="poller")


def backoff_intervals(
    initial: float = 5, multiplier: float = 2, maximum: float = 60
) -> Iterator[float]:
    """Yield ``min(initial * multiplier**n, maximum)`` for n = 0, 1, 2, ...

    Example:
        >>> intervals = backoff_intervals()
        >>> [next(intervals) for _ in range(6)]
        [5, 10, 20, 40, 60, 60]
    """
    interval = initial
    while interval < maximum:
        yield interval
        interval = interval * multiplier
    while True:
        yield maximum


class JobPoller:
    """Waits for search jobs and export actions to reach a terminal status."""

    def __init__(
        self,
        client: Optional[ComplianceClient] = None,
        config: Optional[PollingConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.client = client
        self.config = config or PollingConfig()
        self.clock = clock or SystemClock()

    def await_completion(self, job: Job, mode: RunMode, timeout_seconds: float) -> Job:
        """Poll ``job`` until it completes.

        Returns:
            The job in status COMPLETED, with the platform's statistics

        Raises:
            RemoteJobFailed: If the job failed, or status checks kept failing
            PollTimedOut: If the job was not complete after ``timeout_seconds``
            AuthenticationFailed: If the platform rejected the session
        """
        if mode == RunMode.TEST:
            return self._simulate(job)

        if job.status == JobStatus.COMPLETED:
            return job
        if job.is_terminal:
            raise RemoteJobFailed(f"Job {job.id} is already {job.status.value}", job)
        if self.client is None:
            raise RemoteJobFailed("No compliance client configured for a live run", job)

        intervals = backoff_intervals(
            self.config.initial_interval_seconds,
            self.config.backoff_multiplier,
            self.config.max_interval_seconds,
        )
        started = self.clock.now()
        consecutive_errors = 0
        checks = 0

        logger.info(
            "Waiting for remote job",
            extra={
                "event": "poll.started",
                "job_id": job.id,
                "job_kind": job.kind.value,
                "timeout_seconds": timeout_seconds,
            },
        )

        while True:
            checks += 1
            report = None
            try:
                report = self._fetch(job)
            except AuthenticationFailed:
                raise
            except ComplianceError as e:
                consecutive_errors += 1
                if not is_transient(e):
                    failed = job.advance(JobStatus.FAILED, detail=str(e))
                    logger.error(
                        f"Status check for job {job.id} rejected: {e}",
                        extra={"event": "poll.failed", "job_id": job.id, "error_type": type(e).__name__},
                    )
                    raise RemoteJobFailed(f"Status check for job {job.id} rejected: {e}", failed) from e

                logger.warning(
                    f"Status check for job {job.id} failed: {e}",
                    extra={
                        "event": "poll.status.error",
                        "job_id": job.id,
                        "error_type": type(e).__name__,
                        "consecutive_errors": consecutive_errors,
                    },
                )
                if consecutive_errors >= self.config.max_consecutive_status_errors:
                    failed = job.advance(
                        JobStatus.FAILED,
                        detail=f"{consecutive_errors} consecutive status checks failed",
                    )
                    raise RemoteJobFailed(
                        f"Gave up on job {job.id} after {consecutive_errors} consecutive "
                        f"status check failures: {e}",
                        failed,
                    ) from e

            elapsed = self.clock.now() - started

            if report is not None:
                consecutive_errors = 0
                job = self._apply(job, report)
                logger.info(
                    f"Job {job.id} is {job.status.value}",
                    extra={
                        "event": "poll.status",
                        "job_id": job.id,
                        "status": job.status.value,
                        "raw_status": report.raw_status,
                        "check": checks,
                        "elapsed_seconds": round(elapsed, 1),
                    },
                )

                if job.status == JobStatus.COMPLETED:
                    logger.info(
                        "Remote job completed",
                        extra={
                            "event": "poll.completed",
                            "job_id": job.id,
                            "item_count": job.item_count,
                            "total_size_bytes": job.total_size_bytes,
                            "checks": checks,
                            "elapsed_seconds": round(elapsed, 1),
                        },
                    )
                    return job

                if job.is_terminal:
                    logger.error(
                        f"Remote job {job.id} {job.status.value}",
                        extra={"event": "poll.failed", "job_id": job.id, "detail": job.detail},
                    )
                    raise RemoteJobFailed(
                        f"Remote job {job.id} {job.status.value}: {job.detail or 'no detail'}", job
                    )

            if elapsed >= timeout_seconds:
                timed_out = job.advance(JobStatus.TIMED_OUT)
                logger.error(
                    f"Job {job.id} not complete after {timeout_seconds} seconds",
                    extra={
                        "event": "poll.timed_out",
                        "job_id": job.id,
                        "last_status": job.status.value,
                        "checks": checks,
                        "timeout_seconds": timeout_seconds,
                    },
                )
                raise PollTimedOut(
                    f"Job {job.id} not complete after {timeout_seconds} seconds",
                    timed_out,
                    timeout_seconds,
                )

            delay = min(next(intervals), timeout_seconds - elapsed)
            logger.debug(
                f"Next status check in {delay:.1f}s",
                extra={"event": "poll.sleep", "job_id": job.id, "delay_seconds": delay},
            )
            self.clock.sleep(delay)

    def _fetch(self, job: Job) -> JobStatusReport:
        if job.kind == JobKind.EXPORT_ACTION:
            return self.client.get_action_status(job.id)
        return self.client.get_status(job.id)

    def _apply(self, job: Job, report: JobStatusReport) -> Job:
        """Apply a report; a stale report that would move backward is ignored."""
        try:
            return job.apply_report(report)
        except InvalidStatusTransition:
            logger.warning(
                f"Ignoring stale status {report.status.value} for job {job.id}",
                extra={
                    "event": "poll.status.stale",
                    "job_id": job.id,
                    "status": job.status.value,
                    "reported_status": report.status.value,
                },
            )
            return job

    def _simulate(self, job: Job) -> Job:
        report = JobStatusReport(
            status=JobStatus.COMPLETED, item_count=0, total_size_bytes=0, raw_status="simulated"
        )
        completed = job.apply_report(report)
        logger.info(
            "Simulated status check",
            extra={
                "event": "poll.simulated",
                "job_id": completed.id,
                "status": completed.status.value,
                "item_count": completed.item_count,
            },
        )
        return completed
