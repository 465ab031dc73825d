"""Configuration management for the sync engine."""

import os
import logging
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


CADENCE_ENV_PREFIX = "SYNC_CADENCE_"


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def load_environment(env_file: Optional[str] = None) -> None:
    """Load environment variables from .env file.

    Args:
        env_file: Path to .env file. If None, looks for .env in current directory.
    """
    if env_file:
        env_path = Path(env_file)
    else:
        env_path = Path('.env')

    if env_path.exists():
        load_dotenv(env_path)
        logging.info(f"Loaded environment from {env_path}")
    else:
        logging.warning(f"No .env file found at {env_path}")


def get_required_env(key: str) -> str:
    """Get a required environment variable.

    Args:
        key: Environment variable name

    Returns:
        Environment variable value

    Raises:
        ValueError: If the environment variable is not set
    """
    value = os.getenv(key)
    if not value:
        raise ValueError(f"Required environment variable {key} is not set")
    return value


def get_optional_env(key: str, default: str = "") -> str:
    """Get an optional environment variable.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value or default
    """
    return os.getenv(key, default)


class RemoteSettings(BaseModel):
    """Connection and throttling settings for the remote tabular store."""
    api_url: str = Field("https://api.airtable.com/v0", description="Remote API root")
    base_id: str = Field(..., description="Remote base identifier")
    token: str = Field(..., description="Bearer token")
    min_interval_ms: int = Field(250, ge=0, description="Minimum gap between two outbound calls")
    retry_base_delay: float = Field(1.0, ge=0, description="Base delay in seconds for retry backoff")
    max_attempts: int = Field(3, ge=1, description="Attempts per call, first try included")
    batch_size: int = Field(10, ge=1, le=10, description="Records per create/update call")
    timeout_seconds: float = Field(30.0, gt=0)


class SyncSettings(BaseModel):
    """Engine-wide settings."""
    remote: RemoteSettings
    database_url: str = Field("sqlite:///fleetsync.db")
    critical_interval_seconds: int = Field(300, gt=0, description="Critical sweep period")
    bidirectional_interval_seconds: int = Field(900, gt=0, description="Bidirectional sweep period")
    cadence_overrides: Dict[str, str] = Field(default_factory=dict, description="Cron cadence per table")


def get_cadence_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Collect per-table cadence overrides.

    ``SYNC_CADENCE_ORDERS="*/2 * * * *"`` overrides the cadence of the
    ``orders`` table.
    """
    environ = os.environ if environ is None else environ
    overrides = {}
    for key, value in environ.items():
        if key.startswith(CADENCE_ENV_PREFIX) and value.strip():
            table_name = key[len(CADENCE_ENV_PREFIX):].lower()
            overrides[table_name] = value.strip()
    return overrides


def load_settings(token: Optional[str] = None, base_id: Optional[str] = None) -> SyncSettings:
    """Build settings from the environment.

    Args:
        token: Explicit token, e.g. from Secret Manager. Falls back to AIRTABLE_TOKEN.
        base_id: Explicit base id. Falls back to AIRTABLE_BASE_ID.

    Returns:
        Validated settings

    Raises:
        ValueError: If the token or base id is missing
    """
    remote = RemoteSettings(
        api_url=get_optional_env("AIRTABLE_API_URL", "https://api.airtable.com/v0"),
        base_id=base_id or get_required_env("AIRTABLE_BASE_ID"),
        token=token or get_required_env("AIRTABLE_TOKEN"),
        min_interval_ms=int(get_optional_env("SYNC_MIN_INTERVAL_MS", "250")),
        retry_base_delay=float(get_optional_env("SYNC_RETRY_BASE_DELAY", "1.0")),
        max_attempts=int(get_optional_env("SYNC_MAX_ATTEMPTS", "3")),
        batch_size=int(get_optional_env("SYNC_BATCH_SIZE", "10")),
        timeout_seconds=float(get_optional_env("SYNC_HTTP_TIMEOUT", "30")),
    )
    return SyncSettings(
        remote=remote,
        database_url=get_optional_env("DATABASE_URL", "sqlite:///fleetsync.db"),
        critical_interval_seconds=int(get_optional_env("SYNC_CRITICAL_INTERVAL", "300")),
        bidirectional_interval_seconds=int(get_optional_env("SYNC_BIDIRECTIONAL_INTERVAL", "900")),
        cadence_overrides=get_cadence_overrides(),
    )
