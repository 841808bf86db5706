"""Repositories for the forward ledger and run audit trail.

Repositories wrap a SQLAlchemy session, translate between ORM rows and domain
models, and turn SQLAlchemy failures into persistence exceptions.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mail_forwarder.domain.models import ForwardRecord, RunRecord

from .exceptions import DataIntegrityError, PersistenceError
from .schema import ForwardRecordModel, RunRecordModel

logger = logging.getLogger(__name__)


class ForwardLedgerRepository:
    """Tracks which items were already delivered to which target folder."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _key(source_scope: str, item_id: str, target_scope: str, target_folder: str) -> dict:
        return {
            "source_scope": source_scope.lower(),
            "item_id": item_id,
            "target_scope": target_scope.lower(),
            "target_folder": target_folder,
        }

    def has_been_forwarded(
        self, source_scope: str, item_id: str, target_scope: str, target_folder: str
    ) -> bool:
        """Check whether an item was already delivered to the target folder.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            return (
                self.session.get(
                    ForwardRecordModel,
                    self._key(source_scope, item_id, target_scope, target_folder),
                )
                is not None
            )
        except SQLAlchemyError as e:
            logger.error(f"Error checking forward ledger for item {item_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to check forward ledger: {e}") from e

    def record_forward(
        self,
        source_scope: str,
        item_id: str,
        target_scope: str,
        target_folder: str,
        run_id: str,
        job_id: str,
        forwarded_at: datetime,
    ) -> ForwardRecord:
        """Record a delivered item. Recording the same delivery twice is a no-op.

        Returns:
            The persisted (or previously persisted) ForwardRecord

        Raises:
            DataIntegrityError: If a constraint fails for another reason
            PersistenceError: If database error occurs
        """
        key = self._key(source_scope, item_id, target_scope, target_folder)
        try:
            existing = self.session.get(ForwardRecordModel, key)
            if existing:
                logger.debug(f"Forward of item {item_id} already recorded")
                return existing.to_domain()

            record = ForwardRecord(run_id=run_id, job_id=job_id, forwarded_at=forwarded_at, **key)
            model = ForwardRecordModel.from_domain(record)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            self.session.rollback()
            existing = self.session.get(ForwardRecordModel, key)
            if existing:
                return existing.to_domain()
            raise DataIntegrityError(f"Failed to record forward: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error recording forward of item {item_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record forward: {e}") from e

    def count_for_run(self, run_id: str) -> int:
        """Count ledger entries written by one run."""
        try:
            stmt = select(func.count()).select_from(ForwardRecordModel).where(
                ForwardRecordModel.run_id == run_id
            )
            return int(self.session.execute(stmt).scalar_one())
        except SQLAlchemyError as e:
            logger.error(f"Error counting forwards for run {run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count forwards: {e}") from e

    def get_for_run(self, run_id: str) -> List[ForwardRecord]:
        """Return the ledger entries written by one run, oldest first."""
        try:
            stmt = (
                select(ForwardRecordModel)
                .where(ForwardRecordModel.run_id == run_id)
                .order_by(ForwardRecordModel.forwarded_at.asc())
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving forwards for run {run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve forwards: {e}") from e


class RunRepository:
    """Audit trail of forwarding runs."""

    def __init__(self, session: Session):
        self.session = session

    def record_run(self, record: RunRecord) -> RunRecord:
        """Insert a run, or update it when the run id already exists.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            existing = self.session.get(RunRecordModel, record.run_id)
            if existing:
                existing.apply(record)
                self.session.flush()
                return existing.to_domain()

            model = RunRecordModel.from_domain(record)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error recording run {record.run_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to record run: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error recording run {record.run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record run: {e}") from e

    def get_by_id(self, run_id: str) -> Optional[RunRecord]:
        try:
            model = self.session.get(RunRecordModel, run_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving run {run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve run: {e}") from e

    def get_recent(self, limit: int = 10) -> List[RunRecord]:
        """Return the most recently started runs, newest first."""
        try:
            stmt = select(RunRecordModel).order_by(RunRecordModel.started_at.desc()).limit(limit)
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving recent runs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve runs: {e}") from e
