"""Configuration schema models using Pydantic."""

from datetime import date
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from mail_forwarder.domain.models import (
    ForwardStrategy,
    MailboxRef,
    RunMode,
    SearchRequest,
    normalize_mailbox_address,
)
from mail_forwarder.utils.timestamps import timestamped_filename

from .duration import DurationParseError, parse_duration, validate_duration_range

DEFAULT_TARGET_FOLDER = "ForwardedEmails"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def default_log_path() -> Path:
    """Timestamped log file under ./logs for a run started now."""
    return Path("logs") / timestamped_filename("mail_forward")


class RunSettings(BaseModel):
    """What to forward, where, and how the run behaves."""

    source_scope: str = Field(..., description="Mailbox whose email is forwarded")
    target_scope: str = Field(..., description="Mailbox that receives the forwards")
    date_range_start: date = Field(..., description="First day included (inclusive)")
    date_range_end: date = Field(..., description="Last day included (inclusive)")
    target_folder: str = Field(DEFAULT_TARGET_FOLDER, min_length=1)
    log_path: Path = Field(default_factory=default_log_path)
    test_mode: bool = Field(False, description="Simulate the run without remote calls")
    verbose: bool = Field(False, description="Duplicate log records to the console")
    strategy: ForwardStrategy = Field(ForwardStrategy.PER_ITEM)
    assume_yes: bool = Field(False, description="Skip the interactive confirmation")

    @field_validator("source_scope", "target_scope")
    @classmethod
    def validate_scope(cls, v: str) -> str:
        return normalize_mailbox_address(v)

    @field_validator("target_folder")
    @classmethod
    def strip_folder(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("target_folder cannot be empty or whitespace-only")
        return stripped

    @model_validator(mode="after")
    def validate_run(self):
        if self.date_range_start > self.date_range_end:
            raise ValueError(
                f"date_range_start ({self.date_range_start}) must not be after "
                f"date_range_end ({self.date_range_end})"
            )
        if (
            self.source_scope.lower() == self.target_scope.lower()
            and self.target_folder.lower() == "inbox"
        ):
            raise ValueError(
                "Forwarding a mailbox into its own Inbox would loop; choose another target folder"
            )
        return self

    @property
    def mode(self) -> RunMode:
        return RunMode.TEST if self.test_mode else RunMode.LIVE

    def to_search_request(self) -> SearchRequest:
        return SearchRequest(
            source_scope=self.source_scope,
            date_range_start=self.date_range_start,
            date_range_end=self.date_range_end,
        )

    def to_target(self) -> MailboxRef:
        return MailboxRef(address=self.target_scope, folder=self.target_folder)


class PollingConfig(BaseModel):
    """Backoff schedule and deadline for status polling."""

    initial_interval_seconds: float = Field(5, gt=0, le=300)
    backoff_multiplier: float = Field(2.0, ge=1.0, le=10.0)
    max_interval_seconds: float = Field(60, gt=0, le=3600)
    timeout: str = Field("30m", description="Wall-clock deadline for a remote job")
    max_consecutive_status_errors: int = Field(5, ge=1, le=100)

    # Computed field
    timeout_seconds: Optional[int] = None

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str) -> str:
        try:
            validate_duration_range(
                parse_duration(v), min_seconds=60, max_seconds=86400, label="Poll timeout"
            )
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_fields(self):
        if self.max_interval_seconds < self.initial_interval_seconds:
            raise ValueError(
                "max_interval_seconds must be greater than or equal to initial_interval_seconds"
            )
        self.timeout_seconds = parse_duration(self.timeout)
        return self


class ForwardingConfig(BaseModel):
    """Per-item delivery retry settings."""

    max_retries: int = Field(3, ge=0, le=10, description="Retries for a failed item forward")
    retry_initial_delay: float = Field(2, ge=0, le=60, description="First retry delay in seconds")
    retry_backoff_multiplier: float = Field(2.0, ge=1.0, le=5.0)
    forward_comment: str = Field(
        "Forwarded for mailbox transfer", description="Comment added to each forwarded item"
    )


class GraphConfig(BaseModel):
    """Microsoft Graph endpoint settings."""

    base_url: str = Field("https://graph.microsoft.com/v1.0", min_length=1)
    authority_url: str = Field("https://login.microsoftonline.com", min_length=1)
    ediscovery_case_id: Optional[str] = Field(
        None, description="eDiscovery case that owns the searches (required in live mode)"
    )
    http_request_timeout: int = Field(30, ge=5, le=300)
    user_agent: str = Field("MailForwarder/1.0", min_length=1)
    page_size: int = Field(100, ge=1, le=1000)

    @field_validator("base_url", "authority_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_agent cannot be empty")
        return stripped


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(LogFormat.KEY_VALUE, description="Log output format")

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for a forwarding run."""

    run: RunSettings
    polling: PollingConfig = Field(default_factory=PollingConfig)
    forwarding: ForwardingConfig = Field(default_factory=ForwardingConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_live_requirements(self):
        if not self.run.test_mode and not self.graph.ediscovery_case_id:
            raise ValueError(
                "graph.ediscovery_case_id is required unless test_mode is enabled"
            )
        return self
