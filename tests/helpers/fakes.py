"""Fake collaborators for deterministic forwarding tests.

None of these touch the network or sleep for real. Each records the calls it
receives so tests can assert on them.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional

from mail_forwarder.compliance.base import ComplianceClient
from mail_forwarder.compliance.session import SessionProvider
from mail_forwarder.config.environment import GraphCredentials
from mail_forwarder.domain.models import JobStatus, JobStatusReport, MailboxRef
from mail_forwarder.domain.query import SearchQuery
from mail_forwarder.forwarding.clock import Clock

ALL_ROLES = frozenset({"eDiscovery.ReadWrite.All", "Mail.Read", "Mail.Send"})

TEST_CREDENTIALS = GraphCredentials(
    tenant_id="11111111-1111-1111-1111-111111111111",
    client_id="22222222-2222-2222-2222-222222222222",
    client_secret="secret",
)


class FakeClock(Clock):
    """Clock whose time only moves when something sleeps."""

    def __init__(self, start: float = 0.0):
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds


class FakeSession:
    def __init__(self, granted_roles: Optional[FrozenSet[str]] = ALL_ROLES):
        self.granted_roles = granted_roles
        self.closed = False


class FakeSessionProvider(SessionProvider):
    """Hands out one FakeSession and counts connects and disconnects."""

    def __init__(
        self,
        granted_roles: Optional[FrozenSet[str]] = ALL_ROLES,
        connect_error: Optional[Exception] = None,
    ):
        self.session = FakeSession(granted_roles)
        self.connect_error = connect_error
        self.connect_calls = 0
        self.disconnect_calls = 0

    def connect(self, credentials: GraphCredentials) -> FakeSession:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error
        return self.session

    def disconnect(self, session: FakeSession) -> None:
        self.disconnect_calls += 1
        session.closed = True


def report(status: JobStatus, item_count: Optional[int] = None, size: Optional[int] = None):
    return JobStatusReport(
        status=status, item_count=item_count, total_size_bytes=size, raw_status=status.value
    )


class FakeComplianceClient(ComplianceClient):
    """Scriptable compliance client.

    ``statuses`` is consumed one entry per status check; the last entry
    repeats. An entry may be an exception instance, which is raised instead.
    ``forward_errors`` maps an item id to the errors raised by successive
    forward attempts for that item.
    """

    def __init__(
        self,
        statuses: Optional[Iterable] = None,
        action_statuses: Optional[Iterable] = None,
        item_ids: Iterable[str] = (),
        forward_errors: Optional[Dict[str, List[Exception]]] = None,
        create_error: Optional[Exception] = None,
        export_error: Optional[Exception] = None,
        list_error: Optional[Exception] = None,
        job_id: str = "search-1",
        action_id: str = "action-1",
    ):
        self.statuses = list(statuses or [report(JobStatus.COMPLETED, 0, 0)])
        self.action_statuses = list(action_statuses or [report(JobStatus.COMPLETED)])
        self.item_ids = list(item_ids)
        self.forward_errors = {k: list(v) for k, v in (forward_errors or {}).items()}
        self.create_error = create_error
        self.export_error = export_error
        self.list_error = list_error
        self.job_id = job_id
        self.action_id = action_id

        self.created: List[tuple] = []
        self.started: List[str] = []
        self.status_checks: List[str] = []
        self.action_checks: List[str] = []
        self.exports: List[tuple] = []
        self.listed: List[str] = []
        self.forwarded: List[tuple] = []

    @property
    def call_count(self) -> int:
        return (
            len(self.created)
            + len(self.started)
            + len(self.status_checks)
            + len(self.action_checks)
            + len(self.exports)
            + len(self.listed)
            + len(self.forwarded)
        )

    def create_job(self, scope: str, query: SearchQuery) -> str:
        self.created.append((scope, query))
        if self.create_error is not None:
            raise self.create_error
        return self.job_id

    def start(self, job_id: str) -> None:
        self.started.append(job_id)

    def get_status(self, job_id: str) -> JobStatusReport:
        self.status_checks.append(job_id)
        return self._next(self.statuses)

    def create_export_action(self, job_id: str, target: MailboxRef) -> str:
        self.exports.append((job_id, target))
        if self.export_error is not None:
            raise self.export_error
        return self.action_id

    def get_action_status(self, action_id: str) -> JobStatusReport:
        self.action_checks.append(action_id)
        return self._next(self.action_statuses)

    def list_result_item_ids(self, job_id: str) -> List[str]:
        self.listed.append(job_id)
        if self.list_error is not None:
            raise self.list_error
        return list(self.item_ids)

    def forward_item(self, source_scope: str, item_id: str, target: str, folder: str) -> None:
        self.forwarded.append((source_scope, item_id, target, folder))
        errors = self.forward_errors.get(item_id)
        if errors:
            raise errors.pop(0)

    @staticmethod
    def _next(queue: list):
        entry = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(entry, Exception):
            raise entry
        return entry
