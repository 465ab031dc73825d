"""
Sync engine for synchronizing local tables with the remote store.
"""

from .conflicts import ConflictResolver, Resolution, should_accept_remote
from .registry import TableSyncRegistry, create_default_registry, default_table_specs
from .scheduler import SweepScheduler
from .sync import SyncOrchestrator
from .sync_log import InMemorySyncLogStore, SqlSyncLogStore, SyncLogStore
from .transforms import FieldMapper
from .factory import create_orchestrator

__all__ = [
    "ConflictResolver",
    "Resolution",
    "should_accept_remote",
    "TableSyncRegistry",
    "create_default_registry",
    "default_table_specs",
    "SweepScheduler",
    "SyncOrchestrator",
    "SyncLogStore",
    "InMemorySyncLogStore",
    "SqlSyncLogStore",
    "FieldMapper",
    "create_orchestrator",
]
