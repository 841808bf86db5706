"""Run state and result models for forwarding runs."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from mail_forwarder.domain.models import ForwardOutcome, ForwardStrategy, RunMode


class RunState(str, Enum):
    """Orchestration state of a run.

    IDLE -> SUBMITTED -> POLLING -> FORWARDING -> DONE, with FAILED and
    TIMED_OUT reachable from any non-terminal state. CANCELLED means the
    operator declined before anything was submitted.
    """

    IDLE = "idle"
    SUBMITTED = "submitted"
    POLLING = "polling"
    FORWARDING = "forwarding"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed-out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.DONE, RunState.FAILED, RunState.TIMED_OUT, RunState.CANCELLED)

    @property
    def exit_code(self) -> int:
        """Process exit status for a run that ended in this state."""
        if self in (RunState.DONE, RunState.CANCELLED):
            return 0
        if self == RunState.TIMED_OUT:
            return 2
        return 1


@dataclass
class RunSummary:
    """
    What a run delivered (or, in test mode, would have delivered).

    Attributes:
        mode: Live or test run
        strategy: Delivery strategy used
        source_scope: Mailbox the items came from
        target_scope: Mailbox the items were forwarded to
        target_folder: Folder label in the target mailbox
        date_range_start: First day of the window (inclusive)
        date_range_end: Last day of the window (inclusive)
        job_id: Search job the items came from
        matched_count: Items matched by the search
        delivered_count: Items forwarded by this run
        failed_count: Items that could not be forwarded
        duplicate_count: Items skipped because an earlier run forwarded them
        exported_count: Items packaged by a bulk export action. The platform
            produces a download package; these items do not reach the target
            mailbox and are not counted as delivered.
        total_size_bytes: Size of the matched items as reported by the platform
        outcomes: Per-item outcomes (per-item strategy only)
        started_at: UTC timestamp when the run began
        finished_at: UTC timestamp when the run ended
        simulated: True for test-mode summaries; nothing was sent
    """

    mode: RunMode
    strategy: ForwardStrategy
    source_scope: str
    target_scope: str
    target_folder: str
    date_range_start: date
    date_range_end: date
    job_id: Optional[str] = None
    matched_count: int = 0
    delivered_count: int = 0
    failed_count: int = 0
    duplicate_count: int = 0
    exported_count: int = 0
    total_size_bytes: Optional[int] = None
    outcomes: List[ForwardOutcome] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    simulated: bool = False

    def __post_init__(self):
        """Derive counts from per-item outcomes when there are any."""
        if self.outcomes:
            self.matched_count = len(self.outcomes)
            self.duplicate_count = sum(1 for o in self.outcomes if o.already_forwarded)
            self.delivered_count = sum(
                1 for o in self.outcomes if o.delivered and not o.already_forwarded
            )
            self.failed_count = sum(1 for o in self.outcomes if not o.delivered)

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def failed_outcomes(self) -> List[ForwardOutcome]:
        return [o for o in self.outcomes if not o.delivered]


@dataclass
class RunResult:
    """
    Final result of ForwardRun.execute().

    Attributes:
        run_id: Identifier shared by every log record of the run
        state: Terminal run state
        summary: Delivery summary (None when the run failed before forwarding)
        job_id: Search job id, once one was submitted
        error_type: Exception class name for FAILED/TIMED_OUT runs
        error_message: Exception message for FAILED/TIMED_OUT runs
        report: Rendered summary text, when there is a summary
    """

    run_id: str
    state: RunState
    summary: Optional[RunSummary] = None
    job_id: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    report: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return self.state.exit_code
