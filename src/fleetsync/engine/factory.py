"""
Wiring of the sync engine from settings.
"""

import logging
from typing import Optional

from ..connectors import build_default_adapters
from ..core.config import SyncSettings
from ..database.connection import DatabaseManager
from ..integrations.airtable.client import AirtableClient
from ..integrations.airtable.rate_limiter import RateLimiter
from .registry import create_default_registry
from .sync import SyncOrchestrator
from .sync_log import SqlSyncLogStore, SyncLogStore

logger = logging.getLogger(__name__)


def create_orchestrator(settings: SyncSettings, database: Optional[DatabaseManager] = None,
                        client: Optional[AirtableClient] = None,
                        log_store: Optional[SyncLogStore] = None) -> SyncOrchestrator:
    """
    Build an orchestrator with the default table catalogue.

    Args:
        settings: Engine settings
        database: Database to read and write; created from settings when omitted
        client: Remote client; created from settings with a fresh process limiter when omitted
        log_store: Sync log store; the relational store is used when omitted

    Raises:
        ConfigurationError: If a configured table has no adapter
    """
    database = database or DatabaseManager(settings.database_url)
    if client is None:
        limiter = RateLimiter.from_milliseconds(settings.remote.min_interval_ms)
        client = AirtableClient.from_settings(settings.remote, rate_limiter=limiter)

    registry = create_default_registry(build_default_adapters(database),
                                       cadence_overrides=settings.cadence_overrides)
    orchestrator = SyncOrchestrator(registry, client, log_store or SqlSyncLogStore(database))
    logger.info(f"Sync orchestrator ready with {len(registry)} tables")
    return orchestrator
