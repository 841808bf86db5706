"""Delivery of matched items to the target mailbox.

Two strategies are available:
- per-item: enumerate the matched items and forward each one, recording an
  outcome per item and skipping items the forward ledger already holds
- bulk-export: hand the whole search result to one platform export action and
  wait for it with the same poller used for the search
"""

from contextlib import AbstractContextManager
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from mail_forwarder.compliance.base import ComplianceClient
from mail_forwarder.compliance.exceptions import AuthenticationFailed, ComplianceError, is_transient
from mail_forwarder.config.models import ForwardingConfig
from mail_forwarder.domain.models import (
    ForwardOutcome,
    ForwardStrategy,
    Job,
    JobKind,
    JobStatus,
    MailboxRef,
    RunMode,
)
from mail_forwarder.logging import get_logger
from mail_forwarder.logging.context import log_context
from mail_forwarder.persistence.database import get_session
from mail_forwarder.persistence.repositories import ForwardLedgerRepository
from mail_forwarder.utils.timestamps import utc_now

from .clock import Clock, SystemClock
from .exceptions import JobNotCompleted, PerItemForwardFailed, RemoteJobFailed
from .models import RunSummary
from .poller import JobPoller

logger = get_logger(__name__, component="forwarder")

SessionFactory = Callable[[], AbstractContextManager[Session]]


class Forwarder:
    """Forwards the items matched by a completed search job.

    Args:
        client: Compliance client (unused in test mode)
        poller: Poller used to await a bulk export action
        config: Retry settings for per-item delivery
        strategy: Per-item or bulk-export delivery
        run_id: Run id stored with every ledger entry
        export_timeout_seconds: Deadline for a bulk export action
        session_factory: Opens a database session for the forward ledger;
            None disables the ledger
        clock: Time source for retry delays
    """

    def __init__(
        self,
        client: Optional[ComplianceClient] = None,
        poller: Optional[JobPoller] = None,
        config: Optional[ForwardingConfig] = None,
        strategy: ForwardStrategy = ForwardStrategy.PER_ITEM,
        run_id: str = "",
        export_timeout_seconds: float = 1800,
        session_factory: Optional[SessionFactory] = get_session,
        clock: Optional[Clock] = None,
    ) -> None:
        self.client = client
        self.clock = clock or SystemClock()
        self.poller = poller or JobPoller(client, clock=self.clock)
        self.config = config or ForwardingConfig()
        self.strategy = strategy
        self.run_id = run_id
        self.export_timeout_seconds = export_timeout_seconds
        self.session_factory = session_factory

    def forward(self, job: Job, target: MailboxRef, mode: RunMode) -> RunSummary:
        """Deliver the items of ``job`` to ``target``.

        Raises:
            JobNotCompleted: If ``job`` is not COMPLETED
            RemoteJobFailed: If the bulk export action fails
            PollTimedOut: If the bulk export action does not finish in time
            AuthenticationFailed: If the platform rejected the session
        """
        if job.status != JobStatus.COMPLETED:
            raise JobNotCompleted(job)
        if job.request is None:
            raise ValueError(f"Job {job.id} carries no search request")

        summary = RunSummary(
            mode=mode,
            strategy=self.strategy,
            source_scope=job.request.source_scope,
            target_scope=target.address,
            target_folder=target.folder,
            date_range_start=job.request.date_range_start,
            date_range_end=job.request.date_range_end,
            job_id=job.id,
            matched_count=job.item_count or 0,
            total_size_bytes=job.total_size_bytes,
            started_at=utc_now(),
        )

        if mode == RunMode.TEST:
            summary.simulated = True
            logger.info(
                f"Simulated delivery of {summary.matched_count} item(s) to {target}",
                extra={
                    "event": "forward.simulated",
                    "job_id": job.id,
                    "strategy": self.strategy.value,
                    "target": str(target),
                    "item_count": summary.matched_count,
                },
            )
        elif self.strategy == ForwardStrategy.BULK_EXPORT:
            self._forward_bulk(job, target, summary)
        else:
            summary = self._forward_per_item(job, target, summary)

        summary.finished_at = utc_now()
        return summary

    def _forward_per_item(self, job: Job, target: MailboxRef, summary: RunSummary) -> RunSummary:
        item_ids = self._list_items(job)
        logger.info(
            f"Forwarding {len(item_ids)} item(s) to {target}",
            extra={
                "event": "forward.started",
                "job_id": job.id,
                "strategy": self.strategy.value,
                "item_count": len(item_ids),
            },
        )

        outcomes: List[ForwardOutcome] = []
        for item_id in item_ids:
            with log_context(item_id=item_id):
                outcomes.append(self._forward_one(job, item_id, target))

        result = RunSummary(
            mode=summary.mode,
            strategy=summary.strategy,
            source_scope=summary.source_scope,
            target_scope=summary.target_scope,
            target_folder=summary.target_folder,
            date_range_start=summary.date_range_start,
            date_range_end=summary.date_range_end,
            job_id=summary.job_id,
            total_size_bytes=summary.total_size_bytes,
            outcomes=outcomes,
            started_at=summary.started_at,
        )

        logger.info(
            "Per-item forwarding finished",
            extra={
                "event": "forward.completed",
                "job_id": job.id,
                "matched": result.matched_count,
                "delivered": result.delivered_count,
                "failed": result.failed_count,
                "duplicates": result.duplicate_count,
            },
        )
        return result

    def _list_items(self, job: Job) -> List[str]:
        try:
            return self.client.list_result_item_ids(job.id)
        except AuthenticationFailed:
            raise
        except ComplianceError as e:
            raise RemoteJobFailed(f"Could not list items of job {job.id}: {e}", job) from e

    def _forward_one(self, job: Job, item_id: str, target: MailboxRef) -> ForwardOutcome:
        source = job.request.source_scope

        if self._already_forwarded(source, item_id, target):
            logger.info(
                "Item already forwarded by an earlier run; skipping",
                extra={"event": "forward.item.duplicate", "job_id": job.id},
            )
            return ForwardOutcome(item_id=item_id, delivered=True, already_forwarded=True)

        try:
            attempts = self._deliver(source, item_id, target)
        except PerItemForwardFailed as e:
            logger.warning(
                str(e),
                extra={
                    "event": "forward.item.failed",
                    "job_id": job.id,
                    "attempts": e.attempts,
                    "detail": e.detail,
                },
            )
            return ForwardOutcome(
                item_id=item_id, delivered=False, error_detail=e.detail, attempts=e.attempts
            )

        self._record(source, item_id, target, job.id)
        logger.info(
            "Item forwarded",
            extra={"event": "forward.item.delivered", "job_id": job.id, "attempts": attempts},
        )
        return ForwardOutcome(item_id=item_id, delivered=True, attempts=attempts)

    def _deliver(self, source: str, item_id: str, target: MailboxRef) -> int:
        """Forward one item, retrying transient failures.

        Returns:
            Number of attempts it took

        Raises:
            PerItemForwardFailed: When retries are exhausted or the error is permanent
            AuthenticationFailed: If the platform rejected the session
        """
        delay = self.config.retry_initial_delay
        max_attempts = self.config.max_retries + 1

        for attempt in range(1, max_attempts + 1):
            try:
                self.client.forward_item(source, item_id, target.address, target.folder)
                return attempt
            except AuthenticationFailed:
                raise
            except ComplianceError as e:
                if not is_transient(e) or attempt == max_attempts:
                    raise PerItemForwardFailed(item_id, attempt, str(e)) from e
                logger.warning(
                    f"Forward attempt {attempt} failed, retrying in {delay}s: {e}",
                    extra={
                        "event": "forward.item.retry",
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "error_type": type(e).__name__,
                    },
                )
                self.clock.sleep(delay)
                delay = delay * self.config.retry_backoff_multiplier

        raise PerItemForwardFailed(item_id, max_attempts, "no delivery attempt was made")

    def _already_forwarded(self, source: str, item_id: str, target: MailboxRef) -> bool:
        if self.session_factory is None:
            return False
        with self.session_factory() as session:
            return ForwardLedgerRepository(session).has_been_forwarded(
                source, item_id, target.address, target.folder
            )

    def _record(self, source: str, item_id: str, target: MailboxRef, job_id: str) -> None:
        if self.session_factory is None:
            return
        # One transaction per item so a crash never loses earlier deliveries
        with self.session_factory() as session:
            ForwardLedgerRepository(session).record_forward(
                source_scope=source,
                item_id=item_id,
                target_scope=target.address,
                target_folder=target.folder,
                run_id=self.run_id,
                job_id=job_id,
                forwarded_at=utc_now(),
            )

    def _forward_bulk(self, job: Job, target: MailboxRef, summary: RunSummary) -> None:
        try:
            action_id = self.client.create_export_action(job.id, target)
        except AuthenticationFailed:
            raise
        except ComplianceError as e:
            logger.error(
                f"Export action rejected: {e}",
                extra={"event": "forward.export.failed", "job_id": job.id},
            )
            raise RemoteJobFailed(f"Export of job {job.id} rejected: {e}", job) from e

        action = Job(
            id=action_id,
            kind=JobKind.EXPORT_ACTION,
            request=job.request,
            parent_id=job.id,
        )
        logger.info(
            f"Export action started for {summary.matched_count} item(s)",
            extra={
                "event": "forward.export.started",
                "job_id": job.id,
                "action_id": action_id,
                "target": str(target),
            },
        )

        with log_context(action_id=action_id):
            self.poller.await_completion(action, RunMode.LIVE, self.export_timeout_seconds)

        # The export yields a download package; nothing reaches the target mailbox
        summary.exported_count = summary.matched_count
        logger.info(
            f"Export action completed; {summary.exported_count} item(s) packaged for download, "
            f"not delivered to {target}",
            extra={
                "event": "forward.export.completed",
                "job_id": job.id,
                "action_id": action_id,
                "item_count": summary.matched_count,
                "total_size_bytes": summary.total_size_bytes,
            },
        )
