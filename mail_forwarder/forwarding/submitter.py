"""Search submission."""

from typing import Optional

from mail_forwarder.compliance.base import ComplianceClient
from mail_forwarder.compliance.exceptions import AuthenticationFailed, ComplianceError
from mail_forwarder.domain.models import Job, JobKind, JobStatus, RunMode, SearchRequest
from mail_forwarder.domain.query import SearchQuery
from mail_forwarder.logging import get_logger
from mail_forwarder.utils.hashing import compute_request_key

from .exceptions import SubmissionFailed

logger = get_logger(__name__, component="submitter")

TEST_JOB_PREFIX = "test-"


def synthetic_job_id(request: SearchRequest) -> str:
    """Deterministic job id for a test-mode run of ``request``."""
    return f"{TEST_JOB_PREFIX}{compute_request_key(request)[:12]}"


class JobSubmitter:
    """Creates and starts the compliance search for a request.

    Submission is never retried here: a rejected request aborts the run.
    """

    def __init__(self, client: Optional[ComplianceClient] = None) -> None:
        self.client = client

    def submit(self, request: SearchRequest, mode: RunMode) -> Job:
        """Submit a search and return its job handle.

        In test mode no remote call is made and the returned job is RUNNING
        with a deterministic id. In live mode the job is NOT_STARTED until the
        poller observes progress.

        Raises:
            AuthenticationFailed: If the platform rejected the session
            SubmissionFailed: If the platform rejected the request
        """
        query = SearchQuery.from_request(request)

        if mode == RunMode.TEST:
            job = Job(
                id=synthetic_job_id(request),
                kind=JobKind.SEARCH,
                status=JobStatus.RUNNING,
                request=request,
            )
            logger.info(
                "Simulated search submission",
                extra={
                    "event": "submit.simulated",
                    "job_id": job.id,
                    "scope": request.source_scope,
                    "content_query": query.to_kql(),
                    "window": query.describe(),
                },
            )
            return job

        if self.client is None:
            raise SubmissionFailed("No compliance client configured for a live run", request)

        logger.info(
            "Submitting compliance search",
            extra={
                "event": "submit.started",
                "scope": request.source_scope,
                "content_query": query.to_kql(),
            },
        )

        try:
            job_id = self.client.create_job(request.source_scope, query)
            self.client.start(job_id)
        except AuthenticationFailed:
            raise
        except ComplianceError as e:
            logger.error(
                f"Search submission rejected: {e}",
                extra={"event": "submit.failed", "error_type": type(e).__name__},
            )
            raise SubmissionFailed(f"Search submission rejected: {e}", request) from e

        job = Job(id=job_id, kind=JobKind.SEARCH, status=JobStatus.NOT_STARTED, request=request)
        logger.info(
            "Compliance search submitted",
            extra={"event": "submit.completed", "job_id": job.id},
        )
        return job
