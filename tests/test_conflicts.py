"""Tests for conflict resolution of pulled remote changes."""

from datetime import datetime, timedelta, timezone

import pytest

from fleetsync.engine.conflicts import ConflictResolver, local_timestamp, should_accept_remote
from fleetsync.models.config import ConflictPriority, FieldMapping, SyncDirection, TableSyncSpec
from fleetsync.models.sync import RemoteRecord

from conftest import InMemoryAdapter

T = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

DRIVER_SPEC = TableSyncSpec(
    table_name="drivers",
    remote_collection_id="Personnel My Truck",
    direction=SyncDirection.BIDIRECTIONAL,
    field_mapping=[
        FieldMapping(local_path="last_name", remote_field="NOM"),
        FieldMapping(local_path="phone", remote_field="TELEPHONE"),
    ],
)


def _remote(created_time, remote_id="recDRV1", fields=None):
    return RemoteRecord(id=remote_id, fields=fields if fields is not None else {"NOM": "Dupont"},
                        created_time=created_time)


class TestShouldAcceptRemote:
    @pytest.mark.parametrize("priority", [ConflictPriority.LOCAL_WINS, ConflictPriority.MOST_RECENT_WINS])
    def test_newer_remote_change_wins(self, priority):
        local = {"updated_at": T}
        assert should_accept_remote(priority, local, _remote(T + timedelta(seconds=1)))

    @pytest.mark.parametrize("priority", [ConflictPriority.LOCAL_WINS, ConflictPriority.MOST_RECENT_WINS])
    def test_older_remote_change_loses(self, priority):
        local = {"updated_at": T}
        assert not should_accept_remote(priority, local, _remote(T - timedelta(seconds=1)))

    def test_equal_timestamps_keep_local(self):
        assert not should_accept_remote(ConflictPriority.LOCAL_WINS, {"updated_at": T}, _remote(T))

    def test_remote_wins_accepts_older_change(self):
        local = {"updated_at": T}
        assert should_accept_remote(ConflictPriority.REMOTE_WINS, local, _remote(T - timedelta(days=1)))

    def test_naive_local_timestamp_is_utc(self):
        local = {"updated_at": T.replace(tzinfo=None)}
        assert should_accept_remote(ConflictPriority.LOCAL_WINS, local, _remote(T + timedelta(seconds=1)))

    def test_falls_back_to_created_at(self):
        local = {"updated_at": None, "created_at": T}
        assert local_timestamp(local) == T
        assert not should_accept_remote(ConflictPriority.LOCAL_WINS, local, _remote(T - timedelta(seconds=1)))

    def test_local_without_any_timestamp_accepts(self):
        assert should_accept_remote(ConflictPriority.LOCAL_WINS, {}, _remote(T))


class TestConflictResolver:
    def test_accepts_newer_and_rejects_older(self):
        adapter = InMemoryAdapter("drivers", [
            {"id": 1, "remote_id": "recA", "last_name": "Old", "updated_at": T},
            {"id": 2, "remote_id": "recB", "last_name": "Kept", "updated_at": T},
        ])
        changes = [
            _remote(T + timedelta(minutes=5), "recA", {"NOM": "New"}),
            _remote(T - timedelta(minutes=5), "recB", {"NOM": "Stale"}),
        ]

        resolution = ConflictResolver().resolve("drivers", changes, DRIVER_SPEC, adapter)

        assert resolution.accepted == [{"remote_id": "recA", "last_name": "New"}]
        assert resolution.rejected == 1
        assert resolution.inserts == 0

    def test_unknown_remote_id_is_an_insert(self):
        adapter = InMemoryAdapter("drivers", [])

        resolution = ConflictResolver().resolve("drivers", [_remote(T, "recNEW", {"NOM": "Martin"})],
                                                DRIVER_SPEC, adapter)

        assert resolution.inserts == 1
        assert resolution.accepted == [{"remote_id": "recNEW", "last_name": "Martin"}]

    def test_malformed_records_are_counted_and_skipped(self):
        adapter = InMemoryAdapter("drivers", [])
        changes = [
            RemoteRecord(id=None, fields={"NOM": "No id"}, created_time=T),
            RemoteRecord(id="recEMPTY", fields={}, created_time=T),
            RemoteRecord(id="recNOTIME", fields={"NOM": "No time"}),
            _remote(T, "recOK"),
        ]

        resolution = ConflictResolver().resolve("drivers", changes, DRIVER_SPEC, adapter)

        assert resolution.malformed == 3
        assert [partial["remote_id"] for partial in resolution.accepted] == ["recOK"]

    def test_remote_wins_priority_overrides_newer_local(self):
        spec = TableSyncSpec(**{**DRIVER_SPEC.model_dump(), "conflict_priority": ConflictPriority.REMOTE_WINS})
        adapter = InMemoryAdapter("drivers", [
            {"id": 1, "remote_id": "recA", "last_name": "Local", "updated_at": T + timedelta(days=1)},
        ])

        resolution = ConflictResolver().resolve("drivers", [_remote(T, "recA", {"NOM": "Remote"})], spec, adapter)

        assert resolution.accepted == [{"remote_id": "recA", "last_name": "Remote"}]
