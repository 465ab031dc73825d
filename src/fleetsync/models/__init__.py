"""
Models for the fleetsync engine.
"""

from .config import TableSyncSpec, FieldMapping, FieldCodec, SyncDirection, ConflictPriority
from .sync import (
    SyncLog, SyncStatus, SyncLegDirection, SyncPhase, RemoteRecord, SyncBatch,
    TableSyncResult, SweepResult, DomainRecord
)

__all__ = [
    # Table configuration
    "TableSyncSpec",
    "FieldMapping",
    "FieldCodec",
    "SyncDirection",
    "ConflictPriority",

    # Runtime models
    "SyncLog",
    "SyncStatus",
    "SyncLegDirection",
    "SyncPhase",
    "RemoteRecord",
    "SyncBatch",
    "TableSyncResult",
    "SweepResult",
    "DomainRecord",
]
