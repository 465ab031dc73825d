"""
Conflict resolution for inbound remote changes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..connectors.base import TableAdapter
from ..models.config import ConflictPriority, TableSyncSpec
from ..models.sync import DomainRecord, RemoteRecord
from .transforms import FieldMapper

logger = logging.getLogger(__name__)


def _as_utc(value: Any) -> Optional[datetime]:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_timestamp(local: DomainRecord) -> Optional[datetime]:
    """Last local modification time, falling back to creation time."""
    return _as_utc(local.get("updated_at")) or _as_utc(local.get("created_at"))


def should_accept_remote(priority: ConflictPriority, local: DomainRecord, remote: RemoteRecord) -> bool:
    """
    Decide whether a remote change overwrites an existing local row.

    local_wins and most_recent_wins both accept only a remote change strictly
    newer than the local row; remote_wins always accepts.
    """
    if priority == ConflictPriority.REMOTE_WINS:
        return True

    remote_time = _as_utc(remote.created_time)
    if remote_time is None:
        return False
    local_time = local_timestamp(local)
    if local_time is None:
        return True
    return remote_time > local_time


class Resolution(BaseModel):
    """Outcome of resolving one batch of remote changes."""
    accepted: List[Dict[str, Any]] = Field(default_factory=list)
    rejected: int = 0
    malformed: int = 0
    inserts: int = 0


class ConflictResolver:
    """
    Filters remote changes down to the ones that should be applied locally.
    """

    def __init__(self, mapper: Optional[FieldMapper] = None):
        self.mapper = mapper or FieldMapper()

    @staticmethod
    def is_malformed(record: RemoteRecord) -> bool:
        return not record.id or not record.fields or record.created_time is None

    def resolve(self, table_name: str, remote_changes: List[RemoteRecord], spec: TableSyncSpec,
                adapter: TableAdapter) -> Resolution:
        """
        Resolve remote changes against the local rows they reference.

        Args:
            table_name: Local table key, for logging
            remote_changes: Records listed from the remote store
            spec: Table settings holding the conflict priority and mapping
            adapter: Adapter used to look up the local row by remote id

        Returns:
            Resolution with the accepted partial records ready for upsert
        """
        resolution = Resolution()
        for record in remote_changes:
            if self.is_malformed(record):
                logger.warning(f"{table_name}: skipping malformed remote record {record.id!r}")
                resolution.malformed += 1
                continue

            local = adapter.find_by_remote_id(record.id)
            if local is not None and not should_accept_remote(spec.conflict_priority, local, record):
                logger.debug(f"{table_name}: rejected remote change {record.id} ({spec.conflict_priority.value})")
                resolution.rejected += 1
                continue

            partial = self.mapper.from_remote([record], spec)[0]
            if local is None:
                resolution.inserts += 1
            resolution.accepted.append(partial)

        logger.info(f"{table_name}: {len(resolution.accepted)} accepted, {resolution.rejected} rejected, "
                    f"{resolution.malformed} malformed of {len(remote_changes)} remote changes")
        return resolution
