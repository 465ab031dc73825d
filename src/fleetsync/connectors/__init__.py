"""
Table adapters for fleetsync.

This package contains the adapters through which the sync engine reads and
writes each syncable entity type.
"""

from typing import Dict, Type

from ..database.connection import DatabaseManager
from .base import AdapterCapability, TableAdapter
from .entities import (
    ClientAdapter,
    DeliveryReportAdapter,
    DriverAdapter,
    InvoiceAdapter,
    OrderAdapter,
    PickupReportAdapter,
    QuoteAdapter,
    StoreAdapter,
    TrackingEventAdapter,
    UserAdapter,
)
from .sqlalchemy_adapter import SqlTableAdapter

__all__ = [
    "AdapterCapability",
    "TableAdapter",
    "SqlTableAdapter",
    "ADAPTER_REGISTRY",
    "get_adapter_class",
    "build_default_adapters",
]

# Adapter registry for dynamic loading
ADAPTER_REGISTRY: Dict[str, Type[SqlTableAdapter]] = {
    adapter.table_name: adapter
    for adapter in (
        OrderAdapter,
        ClientAdapter,
        DriverAdapter,
        StoreAdapter,
        UserAdapter,
        PickupReportAdapter,
        DeliveryReportAdapter,
        TrackingEventAdapter,
        InvoiceAdapter,
        QuoteAdapter,
    )
}


def get_adapter_class(table_name: str) -> Type[SqlTableAdapter]:
    """Get an adapter class by table name."""
    if table_name not in ADAPTER_REGISTRY:
        raise ValueError(f"Unknown table: {table_name}")
    return ADAPTER_REGISTRY[table_name]


def build_default_adapters(database: DatabaseManager) -> Dict[str, TableAdapter]:
    """Instantiate every registered adapter against one database."""
    return {name: adapter_class(database) for name, adapter_class in ADAPTER_REGISTRY.items()}
