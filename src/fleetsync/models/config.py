"""
Configuration models for table synchronization.
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class SyncDirection(str, Enum):
    """Which way rows flow between the local store and the remote store."""
    PUSH_ONLY = "push_only"
    PULL_ONLY = "pull_only"
    BIDIRECTIONAL = "bidirectional"
    READ_ONLY_MIRROR = "read_only_mirror"

    @property
    def can_push(self) -> bool:
        return self in (SyncDirection.PUSH_ONLY, SyncDirection.BIDIRECTIONAL, SyncDirection.READ_ONLY_MIRROR)

    @property
    def can_pull(self) -> bool:
        return self in (SyncDirection.PULL_ONLY, SyncDirection.BIDIRECTIONAL)


class ConflictPriority(str, Enum):
    """Tie-break applied when an inbound remote change meets an existing local row."""
    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    MOST_RECENT_WINS = "most_recent_wins"


class FieldCodec(str, Enum):
    """Optional encode/decode rule attached to a mapping entry."""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    LIST = "list"


class FieldMapping(BaseModel):
    """Maps a local dotted path to a remote field."""
    local_path: str = Field(..., description="Dotted path in the domain record, e.g. client.last_name")
    remote_field: str = Field(..., description="Field name in the remote collection")
    codec: Optional[FieldCodec] = Field(None, description="Optional encode/decode rule")

    @field_validator('local_path', 'remote_field')
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("mapping paths must not be blank")
        return v


class TableSyncSpec(BaseModel):
    """
    Synchronization settings for one local table.
    """
    # Identity
    table_name: str = Field(..., description="Unique local table key")
    remote_collection_id: str = Field(..., description="Remote table id or name")

    # Behaviour
    direction: SyncDirection = Field(SyncDirection.PUSH_ONLY)
    conflict_priority: ConflictPriority = Field(ConflictPriority.LOCAL_WINS)
    critical: bool = Field(False, description="Alert when a sync of this table fails")

    # Scheduling
    cadence: str = Field("*/15 * * * *", description="Cron expression")

    # Field Mappings
    field_mapping: List[FieldMapping] = Field(..., description="Ordered local -> remote mapping")

    @field_validator('cadence')
    @classmethod
    def validate_cadence(cls, v: str) -> str:
        # Basic cron validation
        if len(v.split()) != 5:
            raise ValueError("cadence must be a valid cron expression (5 parts)")
        return v

    @field_validator('field_mapping')
    @classmethod
    def validate_mapping(cls, v: List[FieldMapping]) -> List[FieldMapping]:
        if not v:
            raise ValueError("at least one field mapping is required")
        remote_fields = [m.remote_field for m in v]
        if len(set(remote_fields)) != len(remote_fields):
            raise ValueError("remote fields must be unique within a table mapping")
        return v

    def get_mapping(self, remote_field: str) -> Optional[FieldMapping]:
        """Find the mapping entry for a remote field."""
        for mapping in self.field_mapping:
            if mapping.remote_field == remote_field:
                return mapping
        return None
