"""
Google Cloud services for fleetsync.
"""

from .scheduler import SchedulerService
from .secrets import SecretManagerService

__all__ = [
    "SchedulerService",
    "SecretManagerService",
]
