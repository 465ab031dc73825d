"""Airtable API client for batched record operations."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence
from urllib.parse import quote

import requests
from pydantic import ValidationError

from ...core.config import RemoteSettings, load_settings
from ...core.models import ErrorBody, ListFilter, RecordListResponse, RecordPayload
from ...exceptions import RateLimitError, RemoteAPIError, TransientRemoteError
from ...models.sync import RemoteRecord, SyncBatch
from .rate_limiter import RateLimiter
from .retry import RetryPolicy, parse_retry_after

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 10

# Called after each successful create chunk with (sent records, created records)
CreatedCallback = Callable[[List[RemoteRecord], List[RemoteRecord]], None]


def parse_remote_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by the API (``2024-05-01T10:00:00.000Z``)."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_remote_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class AirtableClient:
    """Client for the Airtable REST API.

    Every HTTP call goes through the shared :class:`RateLimiter` and the
    :class:`RetryPolicy`; a retried call resends the identical chunk.
    """

    def __init__(
        self,
        api_key: str,
        base_id: str,
        base_url: str = "https://api.airtable.com/v0",
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        batch_size: int = MAX_BATCH_SIZE,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        created_time_sort_field: Optional[str] = None,
    ):
        """Initialize the Airtable client.

        Args:
            api_key: Personal access token
            base_id: Base identifier (``app...``)
            base_url: Base URL for the API
            rate_limiter: Shared limiter, one per process
            retry_policy: Retry/backoff policy
            batch_size: Records per create/update call, at most 10
            timeout: Per-request timeout in seconds
            session: Optional preconfigured session
            created_time_sort_field: Remote field holding the creation time, used
                for server-side sorting of list calls when the base has one
        """
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")

        self.api_key = api_key
        self.base_id = base_id
        self.base_url = f"{base_url.rstrip('/')}/{base_id}"
        self.rate_limiter = rate_limiter or RateLimiter()
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = batch_size
        self.timeout = timeout
        self.created_time_sort_field = created_time_sort_field

        # Retries are handled by RetryPolicy so that each attempt passes the rate limiter
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
            'User-Agent': 'fleetsync/1.0'
        })

    @classmethod
    def from_settings(cls, settings: RemoteSettings, rate_limiter: Optional[RateLimiter] = None,
                      session: Optional[requests.Session] = None) -> "AirtableClient":
        return cls(
            api_key=settings.token,
            base_id=settings.base_id,
            base_url=settings.api_url,
            rate_limiter=rate_limiter or RateLimiter.from_milliseconds(settings.min_interval_ms),
            retry_policy=RetryPolicy(max_attempts=settings.max_attempts, base_delay=settings.retry_base_delay),
            batch_size=settings.batch_size,
            timeout=settings.timeout_seconds,
            session=session,
        )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _make_request(self, method: str, collection_id: str, params: Optional[Dict[str, Any]] = None,
                      data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make a single rate-limited request.

        Raises:
            RateLimitError: HTTP 429 or a rate-limit error body
            TransientRemoteError: 5xx, connection failure or timeout
            RemoteAPIError: Any other failure, including malformed payloads
        """
        url = f"{self.base_url}/{quote(collection_id, safe='')}"

        self.rate_limiter.acquire()
        try:
            logger.debug(f"Making {method} request to {url} with params: {params}")
            response = self.session.request(method, url, params=params, json=data, timeout=self.timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientRemoteError(f"Request failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteAPIError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            self._raise_for_status(response)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteAPIError(f"Malformed response body from {url}: {response.text[:200]}",
                                 status_code=response.status_code) from e

    def _raise_for_status(self, response: requests.Response) -> None:
        status = response.status_code
        error = ErrorBody()
        try:
            body = response.json()
            raw_error = body.get("error") if isinstance(body, dict) else None
            if isinstance(raw_error, dict):
                error = ErrorBody(**raw_error)
            elif isinstance(raw_error, str):
                error = ErrorBody(type=raw_error)
        except (ValueError, ValidationError):
            pass

        message = f"HTTP {status}: {error.message or error.type or response.text[:200]}"
        rate_limited = status == 429 or (error.type or "").upper().startswith("RATE_LIMIT")
        if rate_limited:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise RateLimitError(message, status_code=status, retry_after=retry_after)
        if status >= 500:
            raise TransientRemoteError(message, status_code=status)
        raise RemoteAPIError(message, status_code=status)

    def _request(self, method: str, collection_id: str, params: Optional[Dict[str, Any]] = None,
                 data: Optional[Dict[str, Any]] = None) -> RecordListResponse:
        body = self.retry_policy.call(
            lambda: self._make_request(method, collection_id, params=params, data=data),
            description=f"{method} {collection_id}",
        )
        try:
            return RecordListResponse(**body)
        except (TypeError, ValidationError) as e:
            raise RemoteAPIError(f"Malformed {method} response for {collection_id}: {e}") from e

    @staticmethod
    def _to_remote_record(payload: RecordPayload) -> RemoteRecord:
        return RemoteRecord(
            id=payload.id,
            fields=payload.fields,
            created_time=parse_remote_timestamp(payload.createdTime),
        )

    def chunk(self, records: Sequence[RemoteRecord], collection_id: str) -> Iterator[SyncBatch]:
        """Split records into batches of at most ``batch_size``, preserving order."""
        for i in range(0, len(records), self.batch_size):
            yield SyncBatch(collection_id=collection_id, records=list(records[i:i + self.batch_size]))

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    def create_batch(self, collection_id: str, records: Sequence[RemoteRecord],
                     on_created: Optional[CreatedCallback] = None) -> List[RemoteRecord]:
        """Create records, one chunk at a time.

        Args:
            collection_id: Remote table id or name
            records: Records without a remote id
            on_created: Invoked after each successful chunk, for remote id backfill

        Returns:
            Created records carrying their new remote ids
        """
        if any(record.id for record in records):
            raise ValueError("records that already carry a remote id must be updated, not created")

        created: List[RemoteRecord] = []
        for batch in self.chunk(records, collection_id):
            response = self._request('POST', collection_id, data=batch.to_body())
            batch_created = [self._to_remote_record(r) for r in response.records]
            logger.debug(f"Created {len(batch_created)} records in {collection_id}")
            created.extend(batch_created)
            if on_created is not None:
                on_created(batch.records, batch_created)
        return created

    def update_batch(self, collection_id: str, records: Sequence[RemoteRecord]) -> List[RemoteRecord]:
        """Update records that already exist remotely, one chunk at a time."""
        if not all(record.id for record in records):
            raise ValueError("every record in an update batch needs a remote id")

        updated: List[RemoteRecord] = []
        for batch in self.chunk(records, collection_id):
            response = self._request('PATCH', collection_id, data=batch.to_body())
            updated.extend(self._to_remote_record(r) for r in response.records)
            logger.debug(f"Updated {len(batch.records)} records in {collection_id}")
        return updated

    def list_since(self, collection_id: str, since: datetime, page_size: int = 100) -> List[RemoteRecord]:
        """List records created after ``since``, oldest first, following pagination."""
        list_filter = ListFilter(
            filterByFormula=f"IS_AFTER(CREATED_TIME(), '{format_remote_timestamp(since)}')",
            pageSize=page_size,
            sort_field=self.created_time_sort_field,
            sort_direction="asc" if self.created_time_sort_field else None,
        )

        records: List[RemoteRecord] = []
        page = 1
        while True:
            logger.debug(f"Fetching page {page} of {collection_id} changes since {since.isoformat()}")
            response = self._request('GET', collection_id, params=list_filter.to_params())
            for payload in response.records:
                try:
                    records.append(self._to_remote_record(payload))
                except ValueError as e:
                    # Keep malformed rows so the resolver can count and skip them
                    logger.warning(f"Unparseable createdTime on {payload.id}: {e}")
                    records.append(RemoteRecord(id=payload.id, fields=payload.fields))
            if not response.offset:
                break
            list_filter.offset = response.offset
            page += 1

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        records.sort(key=lambda r: r.created_time or epoch)
        logger.info(f"Retrieved {len(records)} remote changes from {collection_id}")
        return records

    def test_connection(self, collection_id: str) -> Dict[str, Any]:
        """Test connection by listing a single record."""
        try:
            response = self._request('GET', collection_id, params=ListFilter(maxRecords=1).to_params())
            return {"status": "success", "message": "Connected to Airtable API",
                    "sample_count": len(response.records)}
        except RemoteAPIError as e:
            return {"status": "error", "message": str(e)}


def create_client_from_env(rate_limiter: Optional[RateLimiter] = None) -> AirtableClient:
    """Create an Airtable client using environment variables.

    Raises:
        ValueError: If required environment variables are missing
    """
    return AirtableClient.from_settings(load_settings().remote, rate_limiter=rate_limiter)
