"""Orchestration of a single forwarding run."""

from dataclasses import replace
from datetime import datetime
from typing import Callable, FrozenSet, Optional
from uuid import uuid4

from mail_forwarder.compliance.base import ComplianceClient
from mail_forwarder.compliance.exceptions import ComplianceError
from mail_forwarder.compliance.graph import GraphComplianceClient
from mail_forwarder.compliance.session import GraphSession, GraphSessionProvider, SessionProvider
from mail_forwarder.config.environment import EnvironmentConfig
from mail_forwarder.config.models import AppConfig
from mail_forwarder.domain.models import ForwardStrategy, Job, RunMode, RunRecord
from mail_forwarder.domain.query import SearchQuery
from mail_forwarder.logging import get_logger
from mail_forwarder.logging.context import log_context
from mail_forwarder.persistence.database import get_session
from mail_forwarder.persistence.exceptions import PersistenceError
from mail_forwarder.persistence.repositories import RunRepository
from mail_forwarder.utils.timestamps import utc_now

from .clock import Clock, SystemClock
from .confirmation import AutoConfirmation, ConfirmationProvider, ConsoleConfirmation
from .exceptions import EnvironmentUnready, ForwardRunError, PollTimedOut
from .forwarder import Forwarder, SessionFactory
from .models import RunResult, RunState, RunSummary
from .poller import JobPoller
from .report import SummaryRenderer, SummaryRenderError
from .submitter import JobSubmitter

logger = get_logger(__name__, component="runner")

# Application roles a live run needs on its Graph token
SEARCH_ROLES: FrozenSet[str] = frozenset({"eDiscovery.ReadWrite.All"})
PER_ITEM_ROLES: FrozenSet[str] = frozenset({"Mail.Read", "Mail.Send"})

ClientFactory = Callable[[GraphSession], ComplianceClient]


class ForwardRun:
    """
    Executes one forwarding run: submit the search, wait for it, deliver.

    In live mode the run owns the platform session. It connects once and
    disconnects exactly once, whatever the outcome. Test mode contacts
    nothing and writes nothing, but still produces and logs a summary.
    """

    def __init__(
        self,
        app_config: AppConfig,
        env_config: Optional[EnvironmentConfig] = None,
        session_provider: Optional[SessionProvider] = None,
        client_factory: Optional[ClientFactory] = None,
        confirmation: Optional[ConfirmationProvider] = None,
        clock: Optional[Clock] = None,
        db_session_factory: Optional[SessionFactory] = get_session,
        renderer: Optional[SummaryRenderer] = None,
    ):
        """
        Args:
            app_config: Validated run configuration
            env_config: Credentials and environment settings (live mode)
            session_provider: Connects to the platform; Graph by default
            client_factory: Builds the compliance client for a session
            confirmation: Asks the operator before a live run; ``assume_yes``
                in the config selects an automatic yes
            clock: Time source for polling and retries
            db_session_factory: Opens database sessions for the ledger and
                the run audit trail; None disables both
            renderer: Summary renderer
        """
        self.app_config = app_config
        self.env_config = env_config or EnvironmentConfig()
        self.session_provider = session_provider or GraphSessionProvider(app_config.graph)
        self.client_factory = client_factory or self._graph_client
        if confirmation is None:
            confirmation = (
                AutoConfirmation(True) if app_config.run.assume_yes else ConsoleConfirmation()
            )
        self.confirmation = confirmation
        self.clock = clock or SystemClock()
        self.db_session_factory = db_session_factory
        self.renderer = renderer or SummaryRenderer()

        self.state = RunState.IDLE
        self.job: Optional[Job] = None

    def _graph_client(self, session: GraphSession) -> ComplianceClient:
        return GraphComplianceClient(session, self.app_config.graph, self.app_config.forwarding)

    def execute(self, run_id: Optional[str] = None) -> RunResult:
        """Run to a terminal state and return the result.

        Fatal errors are logged and mapped to FAILED or TIMED_OUT rather than
        raised. KeyboardInterrupt propagates after the session is released.
        """
        run_id = run_id or uuid4().hex
        started_at = utc_now()
        settings = self.app_config.run

        with log_context(run_id=run_id):
            logger.info(
                "Forwarding run started",
                extra={
                    "event": "run.started",
                    "mode": settings.mode.value,
                    "strategy": settings.strategy.value,
                    "source_scope": settings.source_scope,
                    "target_scope": settings.target_scope,
                    "target_folder": settings.target_folder,
                    "date_range_start": settings.date_range_start.isoformat(),
                    "date_range_end": settings.date_range_end.isoformat(),
                },
            )

            if settings.mode == RunMode.TEST:
                result = self._execute_test(run_id, started_at)
            else:
                result = self._execute_live(run_id, started_at)

            if result.summary is not None:
                try:
                    result.report = self.renderer.render(result.summary, run_id, result.state)
                except SummaryRenderError as e:
                    # Terminal state stands; only the rendered text is missing
                    logger.error(
                        f"Could not render run summary: {e}",
                        extra={"event": "run.summary.render_failed", "state": result.state.value},
                    )
                logger.info(
                    result.report or "Run summary unavailable",
                    extra={
                        "event": "run.summary",
                        "simulated": result.summary.simulated,
                        "matched": result.summary.matched_count,
                        "delivered": result.summary.delivered_count,
                        "failed": result.summary.failed_count,
                        "duplicates": result.summary.duplicate_count,
                        "exported": result.summary.exported_count,
                    },
                )

            logger.info(
                f"Forwarding run finished: {result.state.value}",
                extra={
                    "event": "run.finished",
                    "state": result.state.value,
                    "exit_code": result.exit_code,
                    "job_id": result.job_id,
                    "error_type": result.error_type,
                    "duration_ms": int((utc_now() - started_at).total_seconds() * 1000),
                },
            )
            return result

    def _execute_test(self, run_id: str, started_at: datetime) -> RunResult:
        try:
            summary = self._run_stages(None, run_id, started_at)
        except (ForwardRunError, ComplianceError) as e:
            return self._fail(run_id, e)
        return RunResult(run_id=run_id, state=self.state, summary=summary, job_id=self.job.id)

    def _execute_live(self, run_id: str, started_at: datetime) -> RunResult:
        try:
            self._record_run(run_id, started_at)
            result = self._execute_with_session(run_id, started_at)
        except PersistenceError as e:
            return self._fail(run_id, e)

        try:
            self._record_run(run_id, started_at, result)
        except PersistenceError as e:
            logger.error(
                f"Could not record the run outcome: {e}",
                extra={"event": "run.audit.failed", "state": result.state.value},
            )
            return replace(
                result,
                state=RunState.FAILED,
                error_type=type(e).__name__,
                error_message=f"Run {result.state.value} but could not be recorded: {e}",
            )
        return result

    def _execute_with_session(self, run_id: str, started_at: datetime) -> RunResult:
        credentials = self.env_config.credentials
        if credentials is None:
            return self._fail(
                run_id,
                EnvironmentUnready(
                    "Graph credentials are not configured "
                    "(GRAPH_TENANT_ID, GRAPH_CLIENT_ID, GRAPH_CLIENT_SECRET)"
                ),
            )

        session = None
        try:
            session = self.session_provider.connect(credentials)
            self._check_privileges(session)

            if not self.confirmation.confirm(self._confirmation_prompt()):
                self._transition(RunState.CANCELLED)
                logger.info("Run cancelled by operator", extra={"event": "run.cancelled"})
                return RunResult(run_id=run_id, state=RunState.CANCELLED)

            summary = self._run_stages(self.client_factory(session), run_id, started_at)
            return RunResult(run_id=run_id, state=self.state, summary=summary, job_id=self.job.id)

        except (ForwardRunError, ComplianceError, PersistenceError) as e:
            return self._fail(run_id, e)

        finally:
            if session is not None:
                self.session_provider.disconnect(session)

    def _run_stages(
        self, client: Optional[ComplianceClient], run_id: str, started_at: datetime
    ) -> RunSummary:
        """Submit -> poll -> forward. Leaves ``self.state`` at DONE on success."""
        settings = self.app_config.run
        polling = self.app_config.polling
        mode = settings.mode
        request = settings.to_search_request()

        poller = JobPoller(client, polling, clock=self.clock)
        forwarder = Forwarder(
            client=client,
            poller=poller,
            config=self.app_config.forwarding,
            strategy=settings.strategy,
            run_id=run_id,
            export_timeout_seconds=polling.timeout_seconds,
            session_factory=self.db_session_factory if mode == RunMode.LIVE else None,
            clock=self.clock,
        )

        self.job = JobSubmitter(client).submit(request, mode)
        self._transition(RunState.SUBMITTED)

        with log_context(job_id=self.job.id):
            self._transition(RunState.POLLING)
            self.job = poller.await_completion(self.job, mode, polling.timeout_seconds)

            self._transition(RunState.FORWARDING)
            summary = forwarder.forward(self.job, settings.to_target(), mode)

        summary.started_at = started_at
        summary.finished_at = utc_now()
        self._transition(RunState.DONE)
        return summary

    def _check_privileges(self, session: GraphSession) -> None:
        """Fail fast when the token lacks a role the run needs.

        Raises:
            EnvironmentUnready: If a required role is missing
        """
        granted = session.granted_roles
        if granted is None:
            logger.warning(
                "Token roles could not be read; skipping privilege check",
                extra={"event": "preflight.skipped"},
            )
            return

        required = set(SEARCH_ROLES)
        if self.app_config.run.strategy == ForwardStrategy.PER_ITEM:
            required |= PER_ITEM_ROLES
        missing = required - granted
        if missing:
            raise EnvironmentUnready(
                f"Application is missing required Graph role(s): {', '.join(sorted(missing))}",
                missing=missing,
            )
        logger.info(
            "Privilege check passed",
            extra={"event": "preflight.passed", "roles": sorted(required)},
        )

    def _confirmation_prompt(self) -> str:
        settings = self.app_config.run
        query = SearchQuery(start=settings.date_range_start, end=settings.date_range_end)
        if settings.strategy == ForwardStrategy.BULK_EXPORT:
            return (
                f"Export all mail received {query.describe()} by {settings.source_scope} "
                f"into a download package for {settings.to_target()}? "
                f"Exported items are not delivered to the target mailbox."
            )
        return (
            f"Forward all mail received {query.describe()} by {settings.source_scope} "
            f"to {settings.to_target()} ({settings.strategy.value})?"
        )

    def _transition(self, new_state: RunState) -> None:
        logger.debug(
            f"Run state {self.state.value} -> {new_state.value}",
            extra={"event": "run.state", "from_state": self.state.value, "to_state": new_state.value},
        )
        self.state = new_state

    def _fail(self, run_id: str, error: Exception) -> RunResult:
        """Map a fatal error onto a terminal state and log it."""
        state = RunState.TIMED_OUT if isinstance(error, PollTimedOut) else RunState.FAILED
        stage = "preflight" if isinstance(error, EnvironmentUnready) else self.state.value
        self._transition(state)

        job = getattr(error, "job", None) or self.job
        logger.error(
            f"Run {state.value}: {error}",
            exc_info=isinstance(error, PersistenceError),
            extra={
                "event": "run.failed" if state == RunState.FAILED else "run.timed_out",
                "error_type": type(error).__name__,
                "stage": stage,
                "job_id": job.id if job else None,
                "missing_roles": getattr(error, "missing", None),
                "detail": getattr(error, "detail", None),
            },
        )
        return RunResult(
            run_id=run_id,
            state=state,
            job_id=job.id if job else None,
            error_type=type(error).__name__,
            error_message=str(error),
        )

    def _record_run(
        self, run_id: str, started_at: datetime, result: Optional[RunResult] = None
    ) -> None:
        """Insert or update this run in the audit trail."""
        if self.db_session_factory is None:
            return

        settings = self.app_config.run
        summary: Optional[RunSummary] = result.summary if result else None
        record = RunRecord(
            run_id=run_id,
            mode=settings.mode,
            strategy=settings.strategy,
            source_scope=settings.source_scope,
            target_scope=settings.target_scope,
            target_folder=settings.target_folder,
            date_range_start=settings.date_range_start,
            date_range_end=settings.date_range_end,
            state=result.state.value if result else self.state.value,
            job_id=result.job_id if result else None,
            matched_count=summary.matched_count if summary else 0,
            delivered_count=summary.delivered_count if summary else 0,
            failed_count=summary.failed_count if summary else 0,
            duplicate_count=summary.duplicate_count if summary else 0,
            exported_count=summary.exported_count if summary else 0,
            total_size_bytes=summary.total_size_bytes if summary else None,
            started_at=started_at,
            finished_at=utc_now() if result else None,
            error_message=result.error_message if result else None,
        )
        with self.db_session_factory() as session:
            RunRepository(session).record_run(record)
