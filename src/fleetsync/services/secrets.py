"""
Secret Manager service for retrieving remote store credentials.
"""

import logging
import os
from typing import Dict, Optional

from google.cloud import secretmanager

logger = logging.getLogger(__name__)


class SecretManagerService:
    """Service for retrieving secrets from Google Secret Manager."""

    def __init__(self, project_id: Optional[str] = None,
                 client: Optional[secretmanager.SecretManagerServiceClient] = None):
        """Initialize Secret Manager service."""
        self.project_id = project_id or os.getenv("GOOGLE_CLOUD_PROJECT")
        if not self.project_id:
            raise ValueError("GOOGLE_CLOUD_PROJECT environment variable must be set")

        self.client = client or secretmanager.SecretManagerServiceClient()
        self._cache: Dict[str, str] = {}

    def get_secret(self, secret_name: str, version: str = "latest") -> str:
        """Retrieve a secret value from Secret Manager."""
        cache_key = f"{secret_name}:{version}"

        if cache_key in self._cache:
            return self._cache[cache_key]

        try:
            secret_path = f"projects/{self.project_id}/secrets/{secret_name}/versions/{version}"
            response = self.client.access_secret_version(request={"name": secret_path})
            secret_value = response.payload.data.decode("UTF-8")

            self._cache[cache_key] = secret_value
            logger.info(f"Retrieved secret: {secret_name}")
            return secret_value

        except Exception as e:
            logger.error(f"Failed to retrieve secret {secret_name}: {e}")
            raise

    def get_remote_credentials(self) -> Dict[str, str]:
        """Get the Airtable token and base id, falling back to the environment."""
        try:
            return {
                "AIRTABLE_TOKEN": self.get_secret("airtable-token"),
                "AIRTABLE_BASE_ID": self.get_secret("airtable-base-id"),
            }
        except Exception as e:
            logger.warning(f"Failed to retrieve remote credentials from Secret Manager: {e}")
            return {
                "AIRTABLE_TOKEN": os.getenv("AIRTABLE_TOKEN", ""),
                "AIRTABLE_BASE_ID": os.getenv("AIRTABLE_BASE_ID", ""),
            }
