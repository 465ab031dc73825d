"""
Models for sync runs, sync logs and records in flight.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Any, Optional
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# DomainRecord: a dot-path addressable dict produced by a table adapter
DomainRecord = Dict[str, Any]


class SyncStatus(str, Enum):
    """Outcome of the last sync attempt of a table."""
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class SyncLegDirection(str, Enum):
    """Which leg a sync log row tracks."""
    PUSH = "push"
    PULL = "pull"


class SyncPhase(str, Enum):
    """Per-table state during one sync attempt."""
    IDLE = "idle"
    EXTRACTING = "extracting"
    TRANSFORMING = "transforming"
    PUSHING = "pushing"
    PULLING = "pulling"
    RESOLVING = "resolving"
    APPLYING = "applying"


class SyncLog(BaseModel):
    """Watermark and status of one table leg."""
    table_name: str
    last_sync_at: datetime = Field(default=EPOCH)
    last_status: SyncStatus
    last_error: Optional[str] = None
    direction: SyncLegDirection = SyncLegDirection.PUSH
    records_synced: int = 0
    updated_at: datetime = Field(default_factory=utcnow)


class RemoteRecord(BaseModel):
    """A record shaped for the remote store."""
    id: Optional[str] = Field(None, description="Remote id, absent until first create")
    fields: Dict[str, Any] = Field(default_factory=dict)
    created_time: Optional[datetime] = None
    # Correlation only, never transmitted
    local_id: Optional[Any] = Field(None, exclude=True)

    def to_payload(self) -> Dict[str, Any]:
        """Body entry for a create or update call."""
        payload: Dict[str, Any] = {"fields": self.fields}
        if self.id:
            payload["id"] = self.id
        return payload


class SyncBatch(BaseModel):
    """Up to ``batch_size`` records submitted in one API call."""
    collection_id: str
    records: List[RemoteRecord] = Field(default_factory=list)

    @property
    def local_ids(self) -> List[Any]:
        return [record.local_id for record in self.records]

    def to_body(self) -> Dict[str, Any]:
        return {"records": [record.to_payload() for record in self.records]}


class TableSyncResult(BaseModel):
    """Result of one sync attempt for one table."""
    table_name: str
    leg: SyncLegDirection = SyncLegDirection.PUSH
    status: SyncStatus
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    extracted: int = 0
    created: int = 0
    updated: int = 0
    skipped_records: int = 0

    # Pull leg counters
    pulled: int = 0
    accepted: int = 0
    rejected: int = 0
    malformed: int = 0
    applied: int = 0
    failed: int = 0

    error_message: Optional[str] = None
    triggered_by: str = "manual"

    @property
    def written(self) -> int:
        return self.created + self.updated

    def mark_completed(self, status: SyncStatus, error_message: Optional[str] = None) -> "TableSyncResult":
        self.status = status
        self.error_message = error_message
        self.completed_at = utcnow()
        return self


class SweepResult(BaseModel):
    """Results of one sweep over several tables."""
    sweep: str
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    results: List[TableSyncResult] = Field(default_factory=list)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the sweep."""
        return {
            "sweep": self.sweep,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "tables": len(self.results),
            "success_count": len([r for r in self.results if r.status == SyncStatus.SUCCESS]),
            "failed_count": len([r for r in self.results if r.status == SyncStatus.ERROR]),
            "skipped_count": len([r for r in self.results if r.status == SyncStatus.SKIPPED]),
        }
