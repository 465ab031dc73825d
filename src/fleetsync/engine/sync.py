"""
Sync orchestrator that drives table synchronization between the local store
and the remote store.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..connectors.base import TableAdapter
from ..exceptions import AdapterError, ConfigurationError
from ..integrations.airtable.client import AirtableClient
from ..models.config import SyncDirection, TableSyncSpec
from ..models.sync import (
    EPOCH,
    RemoteRecord,
    SweepResult,
    SyncLegDirection,
    SyncLog,
    SyncPhase,
    SyncStatus,
    TableSyncResult,
    utcnow,
)
from .conflicts import ConflictResolver
from .registry import TableSyncRegistry
from .sync_log import SyncLogStore, table_of
from .transforms import FieldMapper

logger = logging.getLogger(__name__)

# Called with (table_name, error_message) when a critical table fails
AlertHook = Callable[[str, str], None]


class TableBusy(Exception):
    """Raised internally when a table already has a sync in flight."""


class SyncOrchestrator:
    """
    Main engine for executing table syncs and sweeps.

    Tables are processed one at a time within a sweep, and a failure in one
    table is recorded in its sync log without affecting the others.
    """

    def __init__(
        self,
        registry: TableSyncRegistry,
        client: AirtableClient,
        log_store: SyncLogStore,
        mapper: Optional[FieldMapper] = None,
        resolver: Optional[ConflictResolver] = None,
        alert_hooks: Optional[List[AlertHook]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the orchestrator.

        Args:
            registry: Table settings and adapters
            client: Remote store client sharing the process rate limiter
            log_store: Watermark and status store
            mapper: Field mapper
            resolver: Conflict resolver for pulled changes
            alert_hooks: Callbacks invoked when a critical table fails
            clock: Source of sync start times
        """
        self.registry = registry
        self.client = client
        self.log_store = log_store
        self.mapper = mapper or FieldMapper()
        self.resolver = resolver or ConflictResolver(self.mapper)
        self.alert_hooks: List[AlertHook] = list(alert_hooks or [])
        self._clock = clock

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._phases: Dict[str, SyncPhase] = {}

    def add_alert_hook(self, hook: AlertHook) -> None:
        self.alert_hooks.append(hook)

    # ------------------------------------------------------------------
    # Per-table state
    # ------------------------------------------------------------------

    def table_phase(self, table_name: str) -> SyncPhase:
        """Current phase of a table; idle when nothing is running."""
        return self._phases.get(table_name, SyncPhase.IDLE)

    def _set_phase(self, table_name: str, phase: SyncPhase) -> None:
        self._phases[table_name] = phase
        logger.debug(f"{table_name}: {phase.value}")

    @contextmanager
    def _in_flight(self, table_name: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(table_name, threading.Lock())
        if not lock.acquire(blocking=False):
            raise TableBusy(table_name)
        try:
            yield
        finally:
            self._set_phase(table_name, SyncPhase.IDLE)
            lock.release()

    def is_in_flight(self, table_name: str) -> bool:
        lock = self._locks.get(table_name)
        return lock is not None and lock.locked()

    def _resolve(self, table_name: str, result: TableSyncResult) -> Optional[TableSyncSpec]:
        spec = self.registry.get_spec(table_name)
        if spec is None:
            logger.warning(f"Table {table_name} is not registered for sync, nothing to do")
            result.mark_completed(SyncStatus.SKIPPED, f"Table {table_name} is not registered")
        return spec

    def _raise_alert(self, spec: TableSyncSpec, error: str) -> None:
        logger.error(f"CRITICAL sync failure for table {spec.table_name}: {error}")
        for hook in self.alert_hooks:
            try:
                hook(spec.table_name, error)
            except Exception as e:
                logger.error(f"Alert hook {hook!r} failed for {spec.table_name}: {e}")

    # ------------------------------------------------------------------
    # Push leg
    # ------------------------------------------------------------------

    def sync_table(self, table_name: str, force: bool = False, triggered_by: str = "manual") -> TableSyncResult:
        """
        Push local changes of one table to the remote store.

        Args:
            table_name: Local table key
            force: Push a full snapshot instead of changes since the watermark
            triggered_by: What triggered this sync (api, scheduler, manual)

        Returns:
            TableSyncResult; errors are reported in it, never raised
        """
        result = TableSyncResult(table_name=table_name, leg=SyncLegDirection.PUSH,
                                 status=SyncStatus.SKIPPED, triggered_by=triggered_by)
        spec = self._resolve(table_name, result)
        if spec is None:
            return result
        if not spec.direction.can_push:
            logger.info(f"{table_name} is {spec.direction.value}, push skipped")
            return result.mark_completed(SyncStatus.SKIPPED, f"{spec.direction.value} table is not pushed")

        try:
            with self._in_flight(table_name):
                return self._push(spec, self.registry.get_adapter(table_name), force, result)
        except TableBusy:
            logger.warning(f"Sync of {table_name} already in flight, skipping this trigger")
            return result.mark_completed(SyncStatus.SKIPPED, "sync already in flight")

    def _push(self, spec: TableSyncSpec, adapter: TableAdapter, force: bool,
              result: TableSyncResult) -> TableSyncResult:
        table_name = spec.table_name
        started = self._clock()

        try:
            since = self.log_store.watermark(table_name)
            logger.info(f"Starting push of {table_name} since {since.isoformat()} (force={force})")

            self._set_phase(table_name, SyncPhase.EXTRACTING)
            records = adapter.list_modified(since, force=force)
            result.extracted = len(records)
            if not records:
                logger.info(f"No changes in {table_name} since {since.isoformat()}")
                self.log_store.record(table_name, SyncStatus.SKIPPED, watermark=started)
                return result.mark_completed(SyncStatus.SKIPPED)

            self._set_phase(table_name, SyncPhase.TRANSFORMING)
            remote_records = self.mapper.to_remote(records, spec)
            result.skipped_records = len(records) - len(remote_records)
            creates = [r for r in remote_records if not r.id]
            updates = [r for r in remote_records if r.id]

            self._set_phase(table_name, SyncPhase.PUSHING)
            if creates:
                self.client.create_batch(spec.remote_collection_id, creates,
                                         on_created=self._backfill_callback(spec, adapter, result))
            if updates:
                updated = self.client.update_batch(spec.remote_collection_id, updates)
                result.updated = len(updated)

            self.log_store.record(table_name, SyncStatus.SUCCESS, watermark=started,
                                  records_synced=result.written)
            logger.info(f"Push of {table_name} completed: {result.created} created, "
                        f"{result.updated} updated, {result.skipped_records} skipped")
            return result.mark_completed(SyncStatus.SUCCESS)

        except Exception as e:
            logger.error(f"Push of {table_name} failed: {e}")
            return self._fail(spec, result, str(e), records_synced=result.written)

    def _fail(self, spec: TableSyncSpec, result: TableSyncResult, error: str,
              records_synced: int = 0) -> TableSyncResult:
        """Record a failed leg, alert for critical tables and close the result."""
        try:
            self.log_store.record(spec.table_name, SyncStatus.ERROR, leg=result.leg, error=error,
                                  records_synced=records_synced)
        except Exception as e:
            logger.error(f"Could not record {result.leg.value} failure of {spec.table_name}: {e}")
        if spec.critical:
            self._raise_alert(spec, error)
        return result.mark_completed(SyncStatus.ERROR, error)

    def _backfill_callback(self, spec: TableSyncSpec, adapter: TableAdapter, result: TableSyncResult):
        can_backfill = adapter.get_capabilities().can_backfill_remote_id

        def on_created(sent: List[RemoteRecord], created: List[RemoteRecord]) -> None:
            # Rows exist remotely once the chunk returns, whatever happens next
            result.created += len(created)
            if len(sent) != len(created):
                logger.warning(f"{spec.table_name}: sent {len(sent)} records but {len(created)} were "
                               f"created, remote ids not backfilled for this chunk")
                return
            if not can_backfill:
                return
            for local, remote in zip(sent, created):
                if local.local_id is None or not remote.id:
                    continue
                adapter.backfill_remote_id(local.local_id, remote.id)

        return on_created

    # ------------------------------------------------------------------
    # Pull leg
    # ------------------------------------------------------------------

    def pull_table(self, table_name: str, triggered_by: str = "manual") -> TableSyncResult:
        """
        Pull remote changes of one table, resolve conflicts and apply them.

        Returns:
            TableSyncResult for the pull leg
        """
        result = TableSyncResult(table_name=table_name, leg=SyncLegDirection.PULL,
                                 status=SyncStatus.SKIPPED, triggered_by=triggered_by)
        spec = self._resolve(table_name, result)
        if spec is None:
            return result
        if not spec.direction.can_pull:
            logger.info(f"{table_name} is {spec.direction.value}, pull skipped")
            return result.mark_completed(SyncStatus.SKIPPED, f"{spec.direction.value} table is not pulled")

        try:
            with self._in_flight(table_name):
                return self._pull(spec, self.registry.get_adapter(table_name), result)
        except TableBusy:
            logger.warning(f"Sync of {table_name} already in flight, skipping this trigger")
            return result.mark_completed(SyncStatus.SKIPPED, "sync already in flight")

    def _pull(self, spec: TableSyncSpec, adapter: TableAdapter, result: TableSyncResult) -> TableSyncResult:
        table_name = spec.table_name

        try:
            since = self.log_store.watermark(table_name, SyncLegDirection.PULL)
            self._set_phase(table_name, SyncPhase.PULLING)
            changes = self.client.list_since(spec.remote_collection_id, since)
            result.pulled = len(changes)
            if not changes:
                self.log_store.record(table_name, SyncStatus.SKIPPED, leg=SyncLegDirection.PULL)
                return result.mark_completed(SyncStatus.SKIPPED)

            self._set_phase(table_name, SyncPhase.RESOLVING)
            resolution = self.resolver.resolve(table_name, changes, spec, adapter)
            result.accepted = len(resolution.accepted)
            result.rejected = resolution.rejected
            result.malformed = resolution.malformed

            self._set_phase(table_name, SyncPhase.APPLYING)
            for partial in resolution.accepted:
                remote_id = partial.pop("remote_id")
                try:
                    adapter.upsert_from_remote(remote_id, partial)
                except AdapterError as e:
                    # A row the local schema rejects is skipped, the rest of the page still applies
                    logger.warning(f"Skipping inbound {table_name} record {remote_id}: {e}")
                    result.failed += 1
                    continue
                result.applied += 1

            times = [c.created_time for c in changes if c.created_time is not None]
            self.log_store.record(table_name, SyncStatus.SUCCESS, leg=SyncLegDirection.PULL,
                                  watermark=max(times) if times else None, records_synced=result.applied)
            logger.info(f"Pull of {table_name} completed: {result.applied} applied, "
                        f"{result.rejected} rejected, {result.malformed} malformed, {result.failed} failed")
            return result.mark_completed(SyncStatus.SUCCESS)

        except Exception as e:
            logger.error(f"Pull of {table_name} failed: {e}")
            return self._fail(spec, result, str(e), records_synced=result.applied)

    def bidirectional_sync(self, table_name: str, force: bool = False,
                           triggered_by: str = "manual") -> List[TableSyncResult]:
        """Push then pull one table, running only the legs its direction allows."""
        spec = self.registry.get_spec(table_name)
        if spec is None:
            result = TableSyncResult(table_name=table_name, status=SyncStatus.SKIPPED, triggered_by=triggered_by)
            self._resolve(table_name, result)
            return [result]

        results = []
        if spec.direction in (SyncDirection.PUSH_ONLY, SyncDirection.BIDIRECTIONAL):
            results.append(self.sync_table(table_name, force=force, triggered_by=triggered_by))
        if spec.direction.can_pull:
            results.append(self.pull_table(table_name, triggered_by=triggered_by))
        return results

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def _sweep_table(self, sweep: str, table_name: str,
                     run: Callable[[], List[TableSyncResult]], triggered_by: str) -> List[TableSyncResult]:
        """Run one table of a sweep; an unexpected error fails that table only."""
        try:
            return run()
        except Exception as e:
            logger.exception(f"{sweep} sweep: unexpected error syncing {table_name}")
            result = TableSyncResult(table_name=table_name, status=SyncStatus.ERROR, triggered_by=triggered_by)
            return [result.mark_completed(SyncStatus.ERROR, str(e))]

    def run_critical_sweep(self, triggered_by: str = "scheduler") -> SweepResult:
        """Push every critical push-capable table."""
        sweep = SweepResult(sweep="critical")
        for spec in self.registry.critical_tables():
            sweep.results.extend(self._sweep_table(
                sweep.sweep, spec.table_name,
                lambda name=spec.table_name: [self.sync_table(name, triggered_by=triggered_by)],
                triggered_by))
        sweep.completed_at = utcnow()
        logger.info(f"Critical sweep completed: {sweep.get_summary()}")
        return sweep

    def run_bidirectional_sweep(self, triggered_by: str = "scheduler") -> SweepResult:
        """Push then pull every bidirectional table; pull-only tables get the pull leg."""
        sweep = SweepResult(sweep="bidirectional")
        for spec in self.registry.pull_tables():
            sweep.results.extend(self._sweep_table(
                sweep.sweep, spec.table_name,
                lambda name=spec.table_name: self.bidirectional_sync(name, triggered_by=triggered_by),
                triggered_by))
        sweep.completed_at = utcnow()
        logger.info(f"Bidirectional sweep completed: {sweep.get_summary()}")
        return sweep

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def health_status(self) -> Dict[str, SyncLog]:
        """Latest sync log per table leg."""
        return {log.table_name: log for log in self.log_store.list_all()}

    def dashboard(self, limit: int = 10) -> Dict[str, Any]:
        """Recent successes and errors, plus tables currently syncing."""
        logs = sorted(self.log_store.list_all(), key=lambda log: log.updated_at, reverse=True)
        errors = [log for log in logs if log.last_status == SyncStatus.ERROR]
        critical = {spec.table_name for spec in self.registry.critical_tables()}
        return {
            "tables": len(self.registry),
            "recent_successes": [log.model_dump(mode="json") for log in logs
                                 if log.last_status == SyncStatus.SUCCESS][:limit],
            "recent_errors": [log.model_dump(mode="json") for log in errors][:limit],
            "critical_failures": sorted({table_of(log) for log in errors if table_of(log) in critical}),
            "in_flight": {name: self.table_phase(name).value
                          for name in self.registry.table_names() if self.is_in_flight(name)},
        }

    def preview(self, table_name: str, sample_size: int = 5) -> Dict[str, Any]:
        """
        Dry-run the transform for a sample of rows, without any remote call.

        Raises:
            ConfigurationError: If the table is not registered
        """
        spec = self.registry.get_spec(table_name)
        if spec is None:
            raise ConfigurationError(f"Table {table_name} is not registered")
        adapter = self.registry.get_adapter(table_name)
        records = adapter.list_modified(EPOCH, force=True)[:sample_size]
        return {
            "table_name": table_name,
            "remote_collection_id": spec.remote_collection_id,
            "direction": spec.direction.value,
            "total_records": adapter.count(),
            "sample_size": len(records),
            "records": self.mapper.preview(records, spec),
        }
