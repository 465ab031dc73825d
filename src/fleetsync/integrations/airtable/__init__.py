"""Airtable REST client with shared rate limiting and retry/backoff."""

from .client import AirtableClient, create_client_from_env
from .rate_limiter import RateLimiter
from .retry import RetryPolicy

__all__ = [
    "AirtableClient",
    "RateLimiter",
    "RetryPolicy",
    "create_client_from_env",
]
