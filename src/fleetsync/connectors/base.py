"""
Base table adapter class for all syncable entity types.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Any, Optional
from pydantic import BaseModel
import logging

from ..models.sync import DomainRecord

logger = logging.getLogger(__name__)


class AdapterCapability(BaseModel):
    """Defines what operations an adapter supports."""
    can_list_modified: bool = True
    can_backfill_remote_id: bool = False
    can_upsert_from_remote: bool = False


class TableAdapter(ABC):
    """Abstract base class for table adapters.

    An adapter is owned by the business module of its entity and is the only
    way the sync engine reads or writes that entity's rows.
    """

    #: Local table key this adapter serves
    table_name: str = ""

    def __init__(self, **kwargs):
        """
        Initialize the adapter.

        Args:
            **kwargs: Additional configuration parameters
        """
        self.config = kwargs
        logger.debug(f"Initialized {self.__class__.__name__} adapter for {self.table_name}")

    @abstractmethod
    def get_capabilities(self) -> AdapterCapability:
        """Return what operations this adapter supports."""
        pass

    def list_modified(self, since: datetime, force: bool = False) -> List[DomainRecord]:
        """
        Read rows modified after ``since``.

        Args:
            since: Watermark; rows changed strictly after it are returned
            force: Return a full snapshot, ignoring ``since``

        Returns:
            Domain records including any joins the field mapping needs
        """
        if not self.get_capabilities().can_list_modified:
            raise NotImplementedError(f"{self.__class__.__name__} does not support listing modified rows")
        return self._list_modified(since, force)

    def backfill_remote_id(self, local_id: Any, remote_id: str) -> None:
        """Store the remote id assigned to a freshly created row."""
        if not self.get_capabilities().can_backfill_remote_id:
            raise NotImplementedError(f"{self.__class__.__name__} does not support remote id backfill")
        self._backfill_remote_id(local_id, remote_id)

    def upsert_from_remote(self, remote_id: str, fields: Dict[str, Any]) -> None:
        """Insert or update the row that references ``remote_id``."""
        if not self.get_capabilities().can_upsert_from_remote:
            raise NotImplementedError(f"{self.__class__.__name__} does not support inbound upserts")
        self._upsert_from_remote(remote_id, fields)

    @abstractmethod
    def find_by_remote_id(self, remote_id: str) -> Optional[DomainRecord]:
        """Return the local row referencing ``remote_id``, if any."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of rows in the table."""
        pass

    @abstractmethod
    def _list_modified(self, since: datetime, force: bool) -> List[DomainRecord]:
        """Adapter-specific extraction."""
        pass

    def _backfill_remote_id(self, local_id: Any, remote_id: str) -> None:
        raise NotImplementedError()

    def _upsert_from_remote(self, remote_id: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError()
