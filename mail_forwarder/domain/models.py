"""Core domain models for searches, jobs, and forward outcomes.

This module defines the data structures shared by every stage of a run:
- SearchRequest: the immutable mailbox scope and inclusive date window
- Job: handle for a remote asynchronous operation and its status
- JobStatusReport: one status observation returned by the remote platform
- MailboxRef: forwarding destination (mailbox address plus folder)
- ForwardOutcome: per-item delivery result
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field, field_validator, model_validator

from mail_forwarder.utils.timestamps import utc_now


class RunMode(str, Enum):
    """Whether a run talks to the remote platform or simulates it."""

    LIVE = "live"
    TEST = "test"


class ForwardStrategy(str, Enum):
    """How matched items are delivered to the target."""

    PER_ITEM = "per-item"
    BULK_EXPORT = "bulk-export"


class JobKind(str, Enum):
    """Kind of remote asynchronous operation."""

    SEARCH = "search"
    EXPORT_ACTION = "export-action"


class JobStatus(str, Enum):
    """Remote job status. Transitions only move forward."""

    NOT_STARTED = "not-started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed-out"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_transition_to(self, new_status: "JobStatus") -> bool:
        """Check whether moving from this status to ``new_status`` is allowed.

        Re-asserting the current status is always allowed. A terminal status
        never changes, and no status moves back toward NOT_STARTED.
        """
        if new_status == self:
            return True
        if self.is_terminal:
            return False
        return new_status.rank > self.rank


_TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMED_OUT})

_STATUS_RANK = {
    JobStatus.NOT_STARTED: 0,
    JobStatus.RUNNING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
    JobStatus.TIMED_OUT: 2,
}


class InvalidStatusTransition(ValueError):
    """Raised when a job status would move backward or leave a terminal state."""

    def __init__(self, job_id: str, current: JobStatus, requested: JobStatus) -> None:
        super().__init__(
            f"Job {job_id}: cannot move from {current.value} to {requested.value}"
        )
        self.job_id = job_id
        self.current = current
        self.requested = requested


def normalize_mailbox_address(value: str) -> str:
    """Validate a mailbox address and return its normalized form.

    Raises:
        ValueError: If the address is not a syntactically valid email address
    """
    if not value or not value.strip():
        raise ValueError("Mailbox address cannot be empty")
    try:
        return validate_email(value.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValueError(f"Invalid mailbox address '{value}': {e}") from e


class SearchRequest(BaseModel):
    """Mailbox scope and inclusive date window for a compliance search.

    Both ``date_range_start`` and ``date_range_end`` are included in the
    search. Instances are immutable once built.
    """

    source_scope: str = Field(..., description="Mailbox whose content is searched")
    date_range_start: date = Field(..., description="First day included in the search")
    date_range_end: date = Field(..., description="Last day included in the search")

    model_config = {"frozen": True}

    @field_validator("source_scope")
    @classmethod
    def validate_scope(cls, v: str) -> str:
        return normalize_mailbox_address(v)

    @model_validator(mode="after")
    def validate_window(self):
        if self.date_range_start > self.date_range_end:
            raise ValueError(
                f"date_range_start ({self.date_range_start}) must not be after "
                f"date_range_end ({self.date_range_end})"
            )
        return self

    @property
    def day_count(self) -> int:
        """Number of calendar days covered by the window."""
        return (self.date_range_end - self.date_range_start).days + 1


class MailboxRef(BaseModel):
    """Forwarding destination."""

    address: str = Field(..., description="Target mailbox address")
    folder: str = Field("ForwardedEmails", min_length=1, description="Target folder")

    model_config = {"frozen": True}

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return normalize_mailbox_address(v)

    @field_validator("folder")
    @classmethod
    def strip_folder(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Folder cannot be empty or whitespace-only")
        return stripped

    def __str__(self) -> str:
        return f"{self.address}/{self.folder}"


class JobStatusReport(BaseModel):
    """A single status observation for a remote job.

    ``item_count`` and ``total_size_bytes`` are only meaningful once the job
    has completed; platforms report them as statistics of the search.
    """

    status: JobStatus
    item_count: Optional[int] = Field(None, ge=0)
    total_size_bytes: Optional[int] = Field(None, ge=0)
    raw_status: Optional[str] = None
    detail: Optional[str] = None


class Job(BaseModel):
    """Handle for a remote asynchronous operation.

    Jobs are immutable values; ``advance`` returns an updated copy so the
    poller is the only place a new status is produced.
    """

    id: str = Field(..., min_length=1)
    kind: JobKind
    status: JobStatus = JobStatus.NOT_STARTED
    created_at: datetime = Field(default_factory=utc_now)
    item_count: Optional[int] = Field(None, ge=0)
    total_size_bytes: Optional[int] = Field(None, ge=0)
    request: Optional[SearchRequest] = None
    parent_id: Optional[str] = Field(None, description="Search job an export action belongs to")
    detail: Optional[str] = None

    model_config = {"frozen": True}

    def advance(self, status: JobStatus, **updates: Any) -> "Job":
        """Return a copy of this job with a new status.

        Args:
            status: Newly observed status
            **updates: Other fields to update (item_count, total_size_bytes, detail)

        Raises:
            InvalidStatusTransition: If the transition would go backward or
                leave a terminal status
        """
        if not self.status.can_transition_to(status):
            raise InvalidStatusTransition(self.id, self.status, status)
        changes = {key: value for key, value in updates.items() if value is not None}
        changes["status"] = status
        return self.model_copy(update=changes)

    def apply_report(self, report: JobStatusReport) -> "Job":
        """Advance this job using a status report from the platform."""
        return self.advance(
            report.status,
            item_count=report.item_count,
            total_size_bytes=report.total_size_bytes,
            detail=report.detail,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ForwardOutcome(BaseModel):
    """Result of forwarding one matched item. Never mutated after creation."""

    item_id: str = Field(..., min_length=1)
    delivered: bool
    error_detail: Optional[str] = None
    attempts: int = Field(0, ge=0)
    already_forwarded: bool = Field(
        False, description="Delivery was found in the forward ledger and skipped"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_detail(self):
        if not self.delivered and not self.error_detail:
            raise ValueError("Undelivered outcomes must carry an error_detail")
        return self


class ForwardRecord(BaseModel):
    """Ledger entry proving an item was delivered to a target folder."""

    source_scope: str
    item_id: str
    target_scope: str
    target_folder: str
    run_id: str
    job_id: str
    forwarded_at: datetime


class RunRecord(BaseModel):
    """Audit trail entry for one forwarding run."""

    run_id: str
    mode: RunMode
    strategy: ForwardStrategy
    source_scope: str
    target_scope: str
    target_folder: str
    date_range_start: date
    date_range_end: date
    state: str
    job_id: Optional[str] = None
    matched_count: int = 0
    delivered_count: int = 0
    failed_count: int = 0
    duplicate_count: int = 0
    exported_count: int = 0
    total_size_bytes: Optional[int] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    error_message: Optional[str] = None
