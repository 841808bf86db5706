"""ORM models for the forward ledger and run audit tables.

Timestamps are stored as ISO 8601 strings with a 'Z' suffix and dates as
``YYYY-MM-DD`` so the SQLite file stays readable with plain tools.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from mail_forwarder.domain.models import ForwardRecord, RunRecord

logger = logging.getLogger(__name__)

Base = declarative_base()


class ForwardRecordModel(Base):
    """ORM model for the forward_records table.

    One row per item delivered to a target folder; the composite key makes a
    second delivery of the same item to the same folder detectable.
    """

    __tablename__ = "forward_records"

    source_scope = Column(String(320), primary_key=True, nullable=False)
    item_id = Column(String(512), primary_key=True, nullable=False)
    target_scope = Column(String(320), primary_key=True, nullable=False)
    target_folder = Column(String(255), primary_key=True, nullable=False)

    run_id = Column(String(64), nullable=False)
    job_id = Column(String(255), nullable=False)
    forwarded_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_forward_records_run", "run_id"),
        Index("idx_forward_records_forwarded_at", "forwarded_at"),
    )

    def to_domain(self) -> ForwardRecord:
        return ForwardRecord(
            source_scope=self.source_scope,
            item_id=self.item_id,
            target_scope=self.target_scope,
            target_folder=self.target_folder,
            run_id=self.run_id,
            job_id=self.job_id,
            forwarded_at=_parse_datetime(self.forwarded_at),
        )

    @classmethod
    def from_domain(cls, record: ForwardRecord) -> "ForwardRecordModel":
        return cls(
            source_scope=record.source_scope,
            item_id=record.item_id,
            target_scope=record.target_scope,
            target_folder=record.target_folder,
            run_id=record.run_id,
            job_id=record.job_id,
            forwarded_at=_format_datetime(record.forwarded_at),
        )


class RunRecordModel(Base):
    """ORM model for the runs table (one row per live forwarding run)."""

    __tablename__ = "runs"

    run_id = Column(String(64), primary_key=True, nullable=False)

    mode = Column(String(16), nullable=False)
    strategy = Column(String(32), nullable=False)
    source_scope = Column(String(320), nullable=False)
    target_scope = Column(String(320), nullable=False)
    target_folder = Column(String(255), nullable=False)
    date_range_start = Column(String(10), nullable=False)
    date_range_end = Column(String(10), nullable=False)

    state = Column(String(32), nullable=False)
    job_id = Column(String(255), nullable=True)
    matched_count = Column(Integer, nullable=False, default=0)
    delivered_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    duplicate_count = Column(Integer, nullable=False, default=0)
    exported_count = Column(Integer, nullable=False, default=0)
    total_size_bytes = Column(Integer, nullable=True)

    started_at = Column(String(50), nullable=False)
    finished_at = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (Index("idx_runs_started_at", "started_at"),)

    def to_domain(self) -> RunRecord:
        return RunRecord(
            run_id=self.run_id,
            mode=self.mode,
            strategy=self.strategy,
            source_scope=self.source_scope,
            target_scope=self.target_scope,
            target_folder=self.target_folder,
            date_range_start=date.fromisoformat(self.date_range_start),
            date_range_end=date.fromisoformat(self.date_range_end),
            state=self.state,
            job_id=self.job_id,
            matched_count=self.matched_count,
            delivered_count=self.delivered_count,
            failed_count=self.failed_count,
            duplicate_count=self.duplicate_count,
            exported_count=self.exported_count,
            total_size_bytes=self.total_size_bytes,
            started_at=_parse_datetime(self.started_at),
            finished_at=_parse_datetime(self.finished_at),
            error_message=self.error_message,
        )

    @classmethod
    def from_domain(cls, record: RunRecord) -> "RunRecordModel":
        model = cls(run_id=record.run_id)
        model.apply(record)
        return model

    def apply(self, record: RunRecord) -> None:
        """Copy every mutable column from ``record`` onto this row."""
        self.mode = record.mode.value
        self.strategy = record.strategy.value
        self.source_scope = record.source_scope
        self.target_scope = record.target_scope
        self.target_folder = record.target_folder
        self.date_range_start = record.date_range_start.isoformat()
        self.date_range_end = record.date_range_end.isoformat()
        self.state = record.state
        self.job_id = record.job_id
        self.matched_count = record.matched_count
        self.delivered_count = record.delivered_count
        self.failed_count = record.failed_count
        self.duplicate_count = record.duplicate_count
        self.exported_count = record.exported_count
        self.total_size_bytes = record.total_size_bytes
        self.started_at = _format_datetime(record.started_at)
        self.finished_at = _format_datetime(record.finished_at)
        self.error_message = record.error_message


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO 8601 UTC string for storage."""
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO 8601 string back to an aware UTC datetime."""
    if not dt_str:
        return None

    dt_str = dt_str.rstrip("Z")
    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    Base.metadata.create_all(engine, checkfirst=True)
    tables = inspect(engine).get_table_names()
    logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
