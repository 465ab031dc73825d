"""Tests for batched Airtable record operations."""

from datetime import datetime, timezone

import pytest

from fleetsync.core.config import RemoteSettings
from fleetsync.exceptions import RemoteAPIError
from fleetsync.integrations.airtable.client import (
    AirtableClient,
    create_client_from_env,
    format_remote_timestamp,
    parse_remote_timestamp,
)
from fleetsync.models.sync import RemoteRecord

from conftest import FakeResponse


def _records(count, prefix="CMD"):
    return [RemoteRecord(fields={"NUMERO DE COMMANDE": f"{prefix}-{i}"}, local_id=i) for i in range(count)]


def test_session_carries_bearer_token(client, session):
    assert session.headers["Authorization"] == "Bearer pat-test"
    assert session.headers["Content-Type"] == "application/json"


def test_batch_size_above_ten_rejected(session):
    with pytest.raises(ValueError):
        AirtableClient(api_key="k", base_id="app", batch_size=11, session=session)


def test_from_settings_applies_throttling_and_retry_settings(session):
    settings = RemoteSettings(base_id="appX", token="pat", min_interval_ms=500, max_attempts=5,
                              retry_base_delay=2.0, batch_size=5)
    client = AirtableClient.from_settings(settings, session=session)

    assert client.base_url == "https://api.airtable.com/v0/appX"
    assert client.rate_limiter.min_interval == pytest.approx(0.5)
    assert client.retry_policy.max_attempts == 5
    assert client.retry_policy.base_delay == 2.0
    assert client.batch_size == 5


def test_25_creates_are_sent_as_10_10_5(client, session):
    created = client.create_batch("Commandes", _records(25))

    posts = session.calls_for("POST")
    assert [len(call.json["records"]) for call in posts] == [10, 10, 5]
    assert len(created) == 25
    assert len({record.id for record in created}) == 25


def test_chunks_preserve_order(client):
    batches = list(client.chunk(_records(12), "Commandes"))

    assert [batch.local_ids for batch in batches] == [list(range(10)), [10, 11]]


def test_local_id_is_never_transmitted(client, session):
    client.create_batch("Commandes", _records(2))

    body = session.calls_for("POST")[0].json
    assert body == {"records": [{"fields": {"NUMERO DE COMMANDE": "CMD-0"}},
                                {"fields": {"NUMERO DE COMMANDE": "CMD-1"}}]}


def test_on_created_is_called_per_chunk(client):
    seen = []

    client.create_batch("Commandes", _records(12),
                        on_created=lambda sent, created: seen.append(([r.local_id for r in sent],
                                                                      [r.id for r in created])))

    assert [len(sent) for sent, _ in seen] == [10, 2]
    assert seen[1][0] == [10, 11]
    assert all(remote_id.startswith("rec") for _, ids in seen for remote_id in ids)


def test_records_with_remote_id_cannot_be_created(client):
    with pytest.raises(ValueError):
        client.create_batch("Commandes", [RemoteRecord(id="rec00000000000001", fields={"A": 1})])


def test_update_batch_sends_ids(client, session):
    created = client.create_batch("Magasins", [RemoteRecord(fields={"NOM DU MAGASIN": "Paris"})])

    updated = client.update_batch("Magasins", [RemoteRecord(id=created[0].id, fields={"NOM DU MAGASIN": "Lyon"})])

    patch = session.calls_for("PATCH")[0]
    assert patch.json == {"records": [{"id": created[0].id, "fields": {"NOM DU MAGASIN": "Lyon"}}]}
    assert updated[0].fields["NOM DU MAGASIN"] == "Lyon"


def test_update_batch_requires_ids(client):
    with pytest.raises(ValueError):
        client.update_batch("Magasins", [RemoteRecord(fields={"A": 1})])


def test_collection_names_are_url_quoted(client, session):
    client.test_connection("Rapports à l'enlèvement")

    assert session.calls[0].url.startswith("https://api.airtable.com/v0/appTEST/Rapports%20")
    assert session.calls[0].collection == "Rapports à l'enlèvement"


def test_list_since_filters_on_creation_time_and_follows_offset(client, session):
    session.queue(
        FakeResponse(200, {"records": [
            {"id": "rec2", "fields": {"NOM": "B"}, "createdTime": "2024-05-01T10:00:02.000Z"},
        ], "offset": "itrNEXT"}),
        FakeResponse(200, {"records": [
            {"id": "rec1", "fields": {"NOM": "A"}, "createdTime": "2024-05-01T10:00:01.000Z"},
        ]}),
    )
    since = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    records = client.list_since("Personnel My Truck", since)

    first, second = session.calls
    assert first.params["filterByFormula"] == "IS_AFTER(CREATED_TIME(), '2024-05-01T09:00:00.000Z')"
    assert "offset" not in first.params
    assert second.params["offset"] == "itrNEXT"
    assert [r.id for r in records] == ["rec1", "rec2"]
    assert records[0].created_time == datetime(2024, 5, 1, 10, 0, 1, tzinfo=timezone.utc)


def test_list_since_keeps_rows_with_unparseable_created_time(client, session):
    session.queue(FakeResponse(200, {"records": [
        {"id": "recBAD", "fields": {"NOM": "X"}, "createdTime": "yesterday"},
        {"id": "recOK", "fields": {"NOM": "Y"}, "createdTime": "2024-05-01T10:00:00.000Z"},
    ]}))

    records = client.list_since("Personnel My Truck", datetime(2024, 1, 1, tzinfo=timezone.utc))

    assert {r.id: r.created_time is None for r in records} == {"recBAD": True, "recOK": False}


def test_malformed_response_body_is_an_error(client, session):
    session.queue(FakeResponse(200, {"records": "nope"}))

    with pytest.raises(RemoteAPIError):
        client.list_since("Magasins", datetime(2024, 1, 1, tzinfo=timezone.utc))


def test_test_connection_reports_errors(client, session):
    session.queue(FakeResponse(401, {"error": {"type": "AUTHENTICATION_REQUIRED", "message": "bad token"}}))

    result = client.test_connection("Commandes")

    assert result["status"] == "error"
    assert "bad token" in result["message"]


def test_timestamp_helpers():
    value = datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)

    assert format_remote_timestamp(value) == "2024-05-01T10:00:00.123Z"
    assert format_remote_timestamp(datetime(2024, 5, 1)) == "2024-05-01T00:00:00.000Z"
    assert parse_remote_timestamp("2024-05-01T10:00:00.123Z") == datetime(2024, 5, 1, 10, 0, 0, 123000,
                                                                          tzinfo=timezone.utc)
    assert parse_remote_timestamp(None) is None


def test_create_client_from_env(monkeypatch):
    monkeypatch.setenv("AIRTABLE_TOKEN", "pat-env")
    monkeypatch.setenv("AIRTABLE_BASE_ID", "appENV")

    client = create_client_from_env()

    assert client.base_url.endswith("/appENV")
    assert client.session.headers["Authorization"] == "Bearer pat-env"
