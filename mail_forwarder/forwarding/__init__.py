"""Forwarding run: submit a search, wait for it, deliver the matched items.

Typical use:
    run = ForwardRun(app_config, env_config)
    result = run.execute()
    sys.exit(result.exit_code)
"""

from mail_forwarder.compliance.exceptions import AuthenticationFailed

from .clock import Clock, SystemClock
from .confirmation import AutoConfirmation, ConfirmationProvider, ConsoleConfirmation
from .exceptions import (
    EnvironmentUnready,
    ForwardRunError,
    JobNotCompleted,
    PerItemForwardFailed,
    PollTimedOut,
    RemoteJobFailed,
    SubmissionFailed,
)
from .forwarder import Forwarder
from .models import RunResult, RunState, RunSummary
from .poller import JobPoller, backoff_intervals
from .report import SummaryRenderer
from .runner import ForwardRun
from .submitter import JobSubmitter

__all__ = [
    "ForwardRun",
    "JobSubmitter",
    "JobPoller",
    "Forwarder",
    "backoff_intervals",
    "SummaryRenderer",
    "RunResult",
    "RunState",
    "RunSummary",
    "Clock",
    "SystemClock",
    "ConfirmationProvider",
    "ConsoleConfirmation",
    "AutoConfirmation",
    "ForwardRunError",
    "EnvironmentUnready",
    "AuthenticationFailed",
    "SubmissionFailed",
    "PollTimedOut",
    "RemoteJobFailed",
    "PerItemForwardFailed",
    "JobNotCompleted",
]
