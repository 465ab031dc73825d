"""
SQLAlchemy-backed table adapter.

Reads rows of one ORM model as nested domain records and writes back remote
ids and inbound changes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

from sqlalchemy import func, inspect, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from ..database.connection import Base, DatabaseManager
from ..exceptions import AdapterError
from ..models.sync import DomainRecord
from .base import AdapterCapability, TableAdapter

logger = logging.getLogger(__name__)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize a datetime to the naive UTC form used by the columns."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_aware_utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlTableAdapter(TableAdapter):
    """
    Generic adapter over one ORM model.

    Subclasses declare the model, the column used for change detection, the
    relationships to eager-load, and which columns inbound changes may write.
    """

    model: Type[Base] = None
    modified_column: str = "updated_at"
    # Dotted relationship paths loaded with each row, e.g. ("client", "order.store")
    relationships: Sequence[str] = ()
    # Columns an inbound remote change may write
    writable_columns: Sequence[str] = ()

    def __init__(self, database: DatabaseManager, **kwargs):
        super().__init__(**kwargs)
        if self.model is None:
            raise AdapterError(f"{self.__class__.__name__} does not declare a model")
        self.database = database

    def get_capabilities(self) -> AdapterCapability:
        return AdapterCapability(
            can_list_modified=True,
            can_backfill_remote_id=hasattr(self.model, "remote_id"),
            can_upsert_from_remote=bool(self.writable_columns),
        )

    # ------------------------------------------------------------------
    # Row <-> record
    # ------------------------------------------------------------------

    @staticmethod
    def _columns_of(instance: Any) -> Dict[str, Any]:
        mapper = inspect(instance).mapper
        return {attr.key: to_aware_utc(getattr(instance, attr.key)) for attr in mapper.column_attrs}

    def to_record(self, instance: Any) -> DomainRecord:
        """Convert an ORM row, with its loaded relationships, to a nested domain record."""
        record = self._columns_of(instance)
        for path in self.relationships:
            target = record
            current = instance
            keys = path.split(".")
            for key in keys:
                current = getattr(current, key, None) if current is not None else None
                if current is None:
                    target.setdefault(key, None)
                    break
                if isinstance(current, list):
                    target[key] = [self._columns_of(item) for item in current]
                    break
                existing = target.get(key)
                if not isinstance(existing, dict):
                    existing = self._columns_of(current)
                    target[key] = existing
                target = existing
        self.enrich(instance, record)
        return record

    def enrich(self, instance: Any, record: DomainRecord) -> None:
        """Hook for derived values computed from the row."""

    def _load_options(self) -> List[Any]:
        options = []
        for path in self.relationships:
            option = None
            owner = self.model
            for key in path.split("."):
                attr = getattr(owner, key)
                option = selectinload(attr) if option is None else option.selectinload(attr)
                owner = attr.property.mapper.class_
            options.append(option)
        return options

    # ------------------------------------------------------------------
    # Adapter operations
    # ------------------------------------------------------------------

    def _list_modified(self, since: datetime, force: bool) -> List[DomainRecord]:
        statement = select(self.model).options(*self._load_options())
        column = getattr(self.model, self.modified_column)
        if not force:
            statement = statement.where(column > to_naive_utc(since))
        statement = statement.order_by(column, self.model.id)

        try:
            with self.database.get_session() as session:
                rows = session.scalars(statement).all()
                records = [self.to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise AdapterError(f"Failed to list modified {self.table_name} rows: {e}") from e

        logger.debug(f"{self.table_name}: {len(records)} rows modified since {since.isoformat()} (force={force})")
        return records

    def _backfill_remote_id(self, local_id: Any, remote_id: str) -> None:
        table = self.model.__table__
        values: Dict[str, Any] = {"remote_id": remote_id}
        if "updated_at" in table.c:
            # An explicit value suppresses the column's onupdate, so the row is not re-extracted
            values["updated_at"] = table.c.updated_at

        statement = update(table).where(table.c.id == local_id).values(**values)
        try:
            with self.database.get_session() as session:
                result = session.execute(statement)
        except SQLAlchemyError as e:
            raise AdapterError(f"Failed to backfill remote id on {self.table_name} {local_id}: {e}") from e

        if result.rowcount == 0:
            logger.warning(f"{self.table_name}: no row {local_id} to backfill with {remote_id}")

    def _upsert_from_remote(self, remote_id: str, fields: Dict[str, Any]) -> None:
        values = self.inbound_values(fields)
        try:
            with self.database.get_session() as session:
                instance = session.scalars(
                    select(self.model).where(self.model.remote_id == remote_id)
                ).first()
                if instance is None:
                    instance = self.model(remote_id=remote_id)
                    session.add(instance)
                    logger.debug(f"{self.table_name}: inserting row for {remote_id}")
                for key, value in values.items():
                    setattr(instance, key, value)
        except SQLAlchemyError as e:
            raise AdapterError(f"Failed to upsert {self.table_name} row for {remote_id}: {e}") from e

    def inbound_values(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Keep only the writable top-level columns of a partial record."""
        values = {}
        for key in self.writable_columns:
            if key in fields and not isinstance(fields[key], dict):
                value = fields[key]
                values[key] = to_naive_utc(value) if isinstance(value, datetime) else value
        return values

    def find_by_remote_id(self, remote_id: str) -> Optional[DomainRecord]:
        if not hasattr(self.model, "remote_id"):
            return None
        with self.database.get_session() as session:
            instance = session.scalars(
                select(self.model).options(*self._load_options()).where(self.model.remote_id == remote_id)
            ).first()
            return self.to_record(instance) if instance is not None else None

    def count(self) -> int:
        with self.database.get_session() as session:
            return session.scalar(select(func.count()).select_from(self.model))

    def add(self, rows: Iterable[Any]) -> None:
        """Persist new rows; used by seeding scripts and tests."""
        with self.database.get_session() as session:
            session.add_all(list(rows))
