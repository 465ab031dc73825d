"""
Custom exceptions for the fleetsync engine.
"""

from typing import Optional

class FleetSyncException(Exception):
    """Base exception for all application-specific errors."""
    pass

class ConfigurationError(FleetSyncException):
    """Error related to table sync configuration or adapter registration."""
    pass

class ExecutionError(FleetSyncException):
    """Error during a sync run."""
    pass

class AdapterError(FleetSyncException):
    """Error raised by a table adapter while reading or writing local rows."""
    pass

class TransformationError(FleetSyncException):
    """Error during field mapping."""
    pass

class RemoteAPIError(FleetSyncException):
    """Exception raised for remote store API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

class RateLimitError(RemoteAPIError):
    """HTTP 429 or an explicit rate-limit signal from the remote store."""
    pass

class TransientRemoteError(RemoteAPIError):
    """5xx, connection reset or timeout. Safe to retry."""
    pass
