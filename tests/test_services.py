"""Tests for Cloud Scheduler jobs, Secret Manager credentials and the in-process sweep scheduler."""

import json
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import NotFound

from fleetsync.engine.registry import default_table_specs
from fleetsync.engine.scheduler import SweepScheduler
from fleetsync.exceptions import ConfigurationError
from fleetsync.models.sync import SweepResult
from fleetsync.services.scheduler import SchedulerService
from fleetsync.services.secrets import SecretManagerService


@pytest.fixture
def scheduler_client():
    client = MagicMock()
    client.delete_job.side_effect = NotFound("no such job")
    client.create_job.side_effect = lambda parent, job: SimpleNamespace(name=job["name"])
    return client


@pytest.fixture
def scheduler(scheduler_client):
    return SchedulerService(project_id="fleet-prod", client=scheduler_client)


class TestSchedulerService:
    def test_parent_and_service_account(self, scheduler):
        assert scheduler.parent == "projects/fleet-prod/locations/europe-west1"
        assert scheduler.service_account_email == "fleetsync-sa@fleet-prod.iam.gserviceaccount.com"

    @pytest.mark.parametrize("seconds,cron", [(300, "*/5 * * * *"), (30, "*/1 * * * *"),
                                              (900, "*/15 * * * *"), (3600, "0 * * * *"),
                                              (7200, "0 */2 * * *"), (86400, "0 0 * * *")])
    def test_seconds_to_cron(self, seconds, cron):
        assert SchedulerService.seconds_to_cron(seconds) == cron

    @pytest.mark.parametrize("seconds", [2700, 420, 5400, 18000])
    def test_seconds_to_cron_rejects_uneven_periods(self, seconds):
        with pytest.raises(ConfigurationError):
            SchedulerService.seconds_to_cron(seconds)

    def test_create_job_replaces_missing_job(self, scheduler, scheduler_client):
        job = scheduler.create_job("sweep-critical", "*/5 * * * *", "https://svc/api/v1/sweeps/critical")

        assert job["job_path"] == "projects/fleet-prod/locations/europe-west1/jobs/fleetsync-sweep-critical"
        sent = scheduler_client.create_job.call_args.kwargs["job"]
        assert sent["http_target"]["uri"] == "https://svc/api/v1/sweeps/critical"
        assert json.loads(sent["http_target"]["body"]) == {"triggered_by": "scheduler"}
        assert sent["http_target"]["oidc_token"]["service_account_email"].startswith("fleetsync-sa@")

    def test_register_sweeps(self, scheduler):
        jobs = scheduler.register_sweeps("https://svc/", 300, 900)

        assert [(j["job_name"], j["schedule"], j["uri"]) for j in jobs] == [
            ("sweep-critical", "*/5 * * * *", "https://svc/api/v1/sweeps/critical"),
            ("sweep-bidirectional", "*/15 * * * *", "https://svc/api/v1/sweeps/bidirectional"),
        ]

    def test_register_tables_uses_table_cadence(self, scheduler):
        jobs = scheduler.register_tables("https://svc", default_table_specs())

        by_name = {job["job_name"]: job for job in jobs}
        assert len(jobs) == 10
        assert by_name["table-orders"]["schedule"] == "*/2 * * * *"
        assert by_name["table-tracking-events"]["uri"] == "https://svc/api/v1/sync/tracking_events"

    def test_delete_job(self, scheduler, scheduler_client):
        assert scheduler.delete_job("sweep-critical") is False

        scheduler_client.delete_job.side_effect = None
        assert scheduler.delete_job("sweep-critical") is True

    def test_list_jobs_keeps_only_own_jobs(self, scheduler, scheduler_client):
        def job(name):
            return SimpleNamespace(name=f"{scheduler.parent}/jobs/{name}", schedule="*/5 * * * *", time_zone="UTC",
                                   state=SimpleNamespace(name="ENABLED"), http_target=SimpleNamespace(uri="https://svc"),
                                   description="d")

        scheduler_client.list_jobs.return_value = [job("fleetsync-sweep-critical"), job("other-job")]

        assert [j["job_name"] for j in scheduler.list_jobs()] == ["sweep-critical"]


class TestSecretManagerService:
    def test_requires_project(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
        with pytest.raises(ValueError):
            SecretManagerService(client=MagicMock())

    def test_secrets_are_cached(self):
        client = MagicMock()
        client.access_secret_version.return_value = SimpleNamespace(payload=SimpleNamespace(data=b"pat-secret"))
        service = SecretManagerService(project_id="fleet-prod", client=client)

        assert service.get_secret("airtable-token") == "pat-secret"
        assert service.get_secret("airtable-token") == "pat-secret"
        client.access_secret_version.assert_called_once_with(
            request={"name": "projects/fleet-prod/secrets/airtable-token/versions/latest"})

    def test_credentials_fall_back_to_environment(self, monkeypatch):
        monkeypatch.setenv("AIRTABLE_TOKEN", "pat-env")
        monkeypatch.setenv("AIRTABLE_BASE_ID", "appENV")
        client = MagicMock()
        client.access_secret_version.side_effect = RuntimeError("permission denied")

        credentials = SecretManagerService(project_id="fleet-prod", client=client).get_remote_credentials()

        assert credentials == {"AIRTABLE_TOKEN": "pat-env", "AIRTABLE_BASE_ID": "appENV"}


class TestSweepScheduler:
    def test_runs_sweeps_until_stopped(self):
        ran = threading.Event()
        calls = []

        def sweep():
            calls.append(1)
            ran.set()
            return SweepResult(sweep="critical")

        scheduler = SweepScheduler()
        scheduler.add_sweep("critical", sweep, interval_seconds=60)
        scheduler.start()

        assert ran.wait(5)
        assert scheduler.running
        scheduler.stop(timeout=5)
        assert not scheduler.running
        assert len(calls) == 1

    def test_failing_sweep_does_not_kill_the_loop(self):
        attempts = []
        second = threading.Event()

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("database unavailable")
            second.set()
            return SweepResult(sweep="bidirectional")

        scheduler = SweepScheduler()
        scheduler.add_sweep("bidirectional", flaky, interval_seconds=0.01)
        scheduler.start()

        assert second.wait(5)
        scheduler.stop(timeout=5)
        assert len(attempts) >= 2

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            SweepScheduler().add_sweep("critical", lambda: None, interval_seconds=0)

    def test_cannot_start_twice(self):
        scheduler = SweepScheduler()
        scheduler.add_sweep("critical", lambda: SweepResult(sweep="critical"), interval_seconds=60)
        scheduler.start()
        try:
            with pytest.raises(RuntimeError):
                scheduler.start()
        finally:
            scheduler.stop(timeout=5)
