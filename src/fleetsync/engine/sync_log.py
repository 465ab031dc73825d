"""
Persistence of per-table sync watermarks and outcomes.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..database.connection import DatabaseManager
from ..database.models import SyncLogModel
from ..exceptions import ExecutionError
from ..models.sync import EPOCH, SyncLegDirection, SyncLog, SyncStatus, utcnow

logger = logging.getLogger(__name__)

PULL_SUFFIX = ":pull"


def log_key(table_name: str, leg: SyncLegDirection = SyncLegDirection.PUSH) -> str:
    """Key of the log row for one leg; the pull leg keeps its own watermark."""
    return f"{table_name}{PULL_SUFFIX}" if leg == SyncLegDirection.PULL else table_name


def table_of(log: SyncLog) -> str:
    """Table a log row belongs to, whichever leg it tracks."""
    if log.direction == SyncLegDirection.PULL and log.table_name.endswith(PULL_SUFFIX):
        return log.table_name[:-len(PULL_SUFFIX)]
    return log.table_name


def _aware(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


class SyncLogStore(ABC):
    """Stores one SyncLog per table leg.

    ``record`` never moves a watermark backwards: the stored value is the
    maximum of the previous and the proposed watermark.
    """

    @abstractmethod
    def get(self, table_name: str, leg: SyncLegDirection = SyncLegDirection.PUSH) -> Optional[SyncLog]:
        pass

    @abstractmethod
    def _save(self, log: SyncLog) -> None:
        pass

    @abstractmethod
    def list_all(self) -> List[SyncLog]:
        pass

    def watermark(self, table_name: str, leg: SyncLegDirection = SyncLegDirection.PUSH) -> datetime:
        """Last successful sync time, or the epoch for a table never synced."""
        log = self.get(table_name, leg)
        return log.last_sync_at if log else EPOCH

    def record(self, table_name: str, status: SyncStatus, leg: SyncLegDirection = SyncLegDirection.PUSH,
               watermark: Optional[datetime] = None, error: Optional[str] = None,
               records_synced: int = 0) -> SyncLog:
        """
        Record the outcome of a sync attempt.

        Args:
            table_name: Local table key
            status: Outcome of the attempt
            leg: Push or pull leg
            watermark: Proposed new watermark; None keeps the current one
            error: Error message for failed attempts
            records_synced: Records written during the attempt

        Returns:
            The stored log
        """
        previous = self.get(table_name, leg)
        current = previous.last_sync_at if previous else EPOCH
        last_sync_at = current if watermark is None else max(current, _aware(watermark))

        log = SyncLog(
            table_name=log_key(table_name, leg),
            last_sync_at=last_sync_at,
            last_status=status,
            last_error=error,
            direction=leg,
            records_synced=records_synced,
            updated_at=utcnow(),
        )
        self._save(log)
        return log


class InMemorySyncLogStore(SyncLogStore):
    """Process-local store for tests and dry runs."""

    def __init__(self):
        self._logs: Dict[str, SyncLog] = {}
        self._lock = threading.Lock()

    def get(self, table_name: str, leg: SyncLegDirection = SyncLegDirection.PUSH) -> Optional[SyncLog]:
        with self._lock:
            log = self._logs.get(log_key(table_name, leg))
            return log.model_copy() if log else None

    def _save(self, log: SyncLog) -> None:
        with self._lock:
            self._logs[log.table_name] = log

    def list_all(self) -> List[SyncLog]:
        with self._lock:
            return [log.model_copy() for log in self._logs.values()]


class SqlSyncLogStore(SyncLogStore):
    """Relational store backed by the ``sync_logs`` table."""

    def __init__(self, database: DatabaseManager):
        self.database = database

    @staticmethod
    def _to_log(row: SyncLogModel) -> SyncLog:
        return SyncLog(
            table_name=row.table_name,
            last_sync_at=_aware(row.last_sync_at),
            last_status=SyncStatus(row.status),
            last_error=row.error,
            direction=SyncLegDirection(row.direction),
            records_synced=row.records_synced or 0,
            updated_at=_aware(row.updated_at) if row.updated_at else utcnow(),
        )

    def get(self, table_name: str, leg: SyncLegDirection = SyncLegDirection.PUSH) -> Optional[SyncLog]:
        try:
            with self.database.get_session() as session:
                row = session.scalars(
                    select(SyncLogModel).where(SyncLogModel.table_name == log_key(table_name, leg))
                ).first()
                return self._to_log(row) if row else None
        except SQLAlchemyError as e:
            raise ExecutionError(f"Failed to read sync log for {table_name}: {e}") from e

    def _save(self, log: SyncLog) -> None:
        naive = log.last_sync_at.astimezone(timezone.utc).replace(tzinfo=None)
        try:
            with self.database.get_session() as session:
                row = session.scalars(
                    select(SyncLogModel).where(SyncLogModel.table_name == log.table_name)
                ).first()
                if row is None:
                    row = SyncLogModel(table_name=log.table_name)
                    session.add(row)
                row.last_sync_at = naive
                row.status = log.last_status.value
                row.error = log.last_error
                row.direction = log.direction.value
                row.records_synced = log.records_synced
        except SQLAlchemyError as e:
            raise ExecutionError(f"Failed to write sync log for {log.table_name}: {e}") from e

    def list_all(self) -> List[SyncLog]:
        with self.database.get_session() as session:
            rows = session.scalars(select(SyncLogModel).order_by(SyncLogModel.table_name)).all()
            return [self._to_log(row) for row in rows]
