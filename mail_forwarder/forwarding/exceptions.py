"""Errors raised while executing a forwarding run.

Every fatal error maps onto a terminal run state:
    EnvironmentUnready, AuthenticationFailed, SubmissionFailed,
    RemoteJobFailed, JobNotCompleted  -> FAILED
    PollTimedOut                      -> TIMED_OUT

PerItemForwardFailed is recovered inside the forwarder and only shows up as an
undelivered ForwardOutcome.
"""

from typing import Iterable, Optional

from mail_forwarder.domain.models import Job, SearchRequest


class ForwardRunError(Exception):
    """Base exception for forwarding run failures."""

    pass


class EnvironmentUnready(ForwardRunError):
    """The session lacks a privilege the run needs. Never retried."""

    def __init__(self, message: str, missing: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.missing = sorted(missing)


class SubmissionFailed(ForwardRunError):
    """The platform rejected the search request."""

    def __init__(self, message: str, request: Optional[SearchRequest] = None) -> None:
        super().__init__(message)
        self.request = request


class RemoteJobFailed(ForwardRunError):
    """A remote job reported failure, or its status could not be observed."""

    def __init__(self, message: str, job: Job) -> None:
        super().__init__(message)
        self.job = job


class PollTimedOut(ForwardRunError):
    """A remote job did not complete before the polling deadline."""

    def __init__(self, message: str, job: Job, timeout_seconds: float) -> None:
        super().__init__(message)
        self.job = job
        self.timeout_seconds = timeout_seconds


class PerItemForwardFailed(ForwardRunError):
    """Forwarding a single item failed after all retries."""

    def __init__(self, item_id: str, attempts: int, detail: str) -> None:
        super().__init__(f"Forward of item {item_id} failed after {attempts} attempt(s): {detail}")
        self.item_id = item_id
        self.attempts = attempts
        self.detail = detail


class JobNotCompleted(ForwardRunError, ValueError):
    """The forwarder was handed a job that has not completed."""

    def __init__(self, job: Job) -> None:
        super().__init__(
            f"Job {job.id} is {job.status.value}; only completed jobs can be forwarded"
        )
        self.job = job
