"""Domain models shared across the forwarding run."""

from .models import (
    ForwardOutcome,
    ForwardRecord,
    ForwardStrategy,
    InvalidStatusTransition,
    Job,
    JobKind,
    JobStatus,
    JobStatusReport,
    MailboxRef,
    RunMode,
    RunRecord,
    SearchRequest,
    normalize_mailbox_address,
)
from .query import SearchQuery

__all__ = [
    "SearchQuery",
    "ForwardOutcome",
    "ForwardRecord",
    "ForwardStrategy",
    "InvalidStatusTransition",
    "Job",
    "JobKind",
    "JobStatus",
    "JobStatusReport",
    "MailboxRef",
    "RunMode",
    "RunRecord",
    "SearchRequest",
    "normalize_mailbox_address",
]
