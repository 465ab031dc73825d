"""
Cloud Scheduler service for managing scheduled sweep and table sync jobs.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from google.api_core.exceptions import NotFound
from google.auth import default
from google.cloud import scheduler_v1

from ..exceptions import ConfigurationError
from ..models.config import TableSyncSpec

logger = logging.getLogger(__name__)

JOB_PREFIX = "fleetsync-"


class SchedulerService:
    """
    Service for managing Cloud Scheduler jobs that call the admin endpoints.
    """

    def __init__(self, project_id: Optional[str] = None, region: str = "europe-west1",
                 service_account_email: Optional[str] = None,
                 client: Optional[scheduler_v1.CloudSchedulerClient] = None):
        """
        Initialize Cloud Scheduler service.

        Args:
            project_id: Google Cloud project ID. If None, uses default from environment.
            region: Cloud Scheduler location
            service_account_email: Identity used for the OIDC token of each call
            client: Preconfigured client, mainly for tests
        """
        try:
            if client is not None:
                self.client = client
                self.project_id = project_id
            elif project_id:
                self.client = scheduler_v1.CloudSchedulerClient()
                self.project_id = project_id
            else:
                # Use application default credentials
                credentials, project = default()
                self.client = scheduler_v1.CloudSchedulerClient(credentials=credentials)
                self.project_id = project

            self.region = region
            self.parent = f"projects/{self.project_id}/locations/{self.region}"
            self.service_account_email = (
                service_account_email or f"fleetsync-sa@{self.project_id}.iam.gserviceaccount.com"
            )

            logger.info(f"Scheduler service initialized for project: {self.project_id}, region: {self.region}")

        except Exception as e:
            logger.error(f"Failed to initialize Cloud Scheduler: {e}")
            raise

    def _job_path(self, job_name: str) -> str:
        return f"{self.parent}/jobs/{JOB_PREFIX}{job_name}"

    def create_job(self, job_name: str, schedule: str, target_url: str,
                   payload: Optional[Dict[str, Any]] = None, description: Optional[str] = None) -> Dict[str, Any]:
        """
        Create or replace an HTTP job.

        Args:
            job_name: Job name without prefix
            schedule: Cron expression
            target_url: Endpoint called on every firing
            payload: JSON body sent with the call
            description: Optional description

        Returns:
            Dictionary with scheduler job details
        """
        job_path = self._job_path(job_name)
        try:
            # Replace any existing job with the same name
            try:
                self.client.delete_job(name=job_path)
                logger.info(f"Deleted existing scheduler job: {job_name}")
            except NotFound:
                pass

            job = {
                "name": job_path,
                "description": description or f"fleetsync job {job_name}",
                "schedule": schedule,
                "time_zone": "UTC",
                "http_target": {
                    "uri": target_url,
                    "http_method": scheduler_v1.HttpMethod.POST,
                    "headers": {
                        "Content-Type": "application/json"
                    },
                    "body": json.dumps(payload or {"triggered_by": "scheduler"}).encode("utf-8"),
                    "oidc_token": {
                        "service_account_email": self.service_account_email
                    }
                }
            }

            response = self.client.create_job(parent=self.parent, job=job)
            logger.info(f"Created scheduler job: {job_name} with schedule: {schedule}")

            return {
                "job_name": job_name,
                "job_path": response.name,
                "schedule": schedule,
                "status": "ENABLED",
                "uri": target_url
            }

        except Exception as e:
            logger.error(f"Failed to create scheduler job {job_name}: {e}")
            raise

    @staticmethod
    def seconds_to_cron(seconds: int) -> str:
        """
        Cron expression firing every ``seconds``, rounded to whole minutes.

        Cron steps restart at each hour and each day, so only periods that
        divide an hour, or whole hours that divide a day, fire evenly.

        Raises:
            ConfigurationError: If the period cannot be expressed exactly
        """
        minutes = max(1, round(seconds / 60))
        if minutes < 60 and 60 % minutes == 0:
            return f"*/{minutes} * * * *"
        if minutes % 60 == 0 and 24 % (minutes // 60) == 0:
            hours = minutes // 60
            if hours == 1:
                return "0 * * * *"
            if hours == 24:
                return "0 0 * * *"
            return f"0 */{hours} * * *"
        raise ConfigurationError(f"An interval of {seconds}s cannot be scheduled evenly with cron; "
                                 f"use a divisor of 60 minutes or of 24 hours")

    def register_sweeps(self, service_url: str, critical_interval_seconds: int,
                        bidirectional_interval_seconds: int) -> List[Dict[str, Any]]:
        """Create the critical and bidirectional sweep jobs."""
        base = service_url.rstrip("/")
        return [
            self.create_job("sweep-critical", self.seconds_to_cron(critical_interval_seconds),
                            f"{base}/api/v1/sweeps/critical", description="Critical tables sweep"),
            self.create_job("sweep-bidirectional", self.seconds_to_cron(bidirectional_interval_seconds),
                            f"{base}/api/v1/sweeps/bidirectional", description="Bidirectional tables sweep"),
        ]

    def register_tables(self, service_url: str, specs: Iterable[TableSyncSpec]) -> List[Dict[str, Any]]:
        """Create one push job per table, firing on the table's cadence."""
        base = service_url.rstrip("/")
        jobs = []
        for spec in specs:
            if not spec.direction.can_push:
                continue
            jobs.append(self.create_job(
                f"table-{spec.table_name.replace('_', '-')}",
                spec.cadence,
                f"{base}/api/v1/sync/{spec.table_name}",
                description=f"Push {spec.table_name} to {spec.remote_collection_id}",
            ))
        return jobs

    def delete_job(self, job_name: str) -> bool:
        """
        Delete a job.

        Returns:
            True if deleted, False if not found
        """
        try:
            self.client.delete_job(name=self._job_path(job_name))
            logger.info(f"Deleted scheduler job: {job_name}")
            return True
        except NotFound:
            logger.warning(f"Scheduler job not found: {job_name}")
            return False
        except Exception as e:
            logger.error(f"Failed to delete scheduler job {job_name}: {e}")
            raise

    def list_jobs(self) -> List[Dict[str, Any]]:
        """
        List all fleetsync Cloud Scheduler jobs.

        Returns:
            List of scheduler job details
        """
        try:
            jobs = []
            for job in self.client.list_jobs(parent=self.parent):
                job_name = job.name.split("/")[-1]
                if not job_name.startswith(JOB_PREFIX):
                    continue
                jobs.append({
                    "job_name": job_name[len(JOB_PREFIX):],
                    "job_path": job.name,
                    "schedule": job.schedule,
                    "time_zone": job.time_zone,
                    "status": job.state.name,
                    "uri": job.http_target.uri if job.http_target else None,
                    "description": job.description,
                })
            return jobs

        except Exception as e:
            logger.error(f"Failed to list schedules: {e}")
            raise
