"""
Table adapters for the transport domain entities.
"""

from typing import Any

from ..database.models import (
    ClientModel,
    DeliveryReportModel,
    DriverModel,
    InvoiceModel,
    OrderModel,
    PickupReportModel,
    QuoteModel,
    StoreModel,
    TrackingEventModel,
    UserModel,
)
from ..models.sync import DomainRecord
from .sqlalchemy_adapter import SqlTableAdapter


class OrderAdapter(SqlTableAdapter):
    """Orders with their client, store and articles."""
    table_name = "orders"
    model = OrderModel
    relationships = ("client", "store", "articles")

    def enrich(self, instance: Any, record: DomainRecord) -> None:
        # The remote base stores an article total and a free-text summary
        articles = instance.articles or []
        details = [a.details or a.name for a in articles if a.details or a.name]
        record["articles"] = {
            "count": sum(a.quantity or 0 for a in articles),
            "details": "; ".join(details) if details else None,
            "items": record.get("articles") or [],
        }


class ClientAdapter(SqlTableAdapter):
    table_name = "clients"
    model = ClientModel


class DriverAdapter(SqlTableAdapter):
    """Drivers are edited on both sides, so inbound changes are applied."""
    table_name = "drivers"
    model = DriverModel
    writable_columns = ("last_name", "first_name", "phone", "email", "role", "status", "notes",
                        "latitude", "longitude")


class StoreAdapter(SqlTableAdapter):
    table_name = "stores"
    model = StoreModel
    writable_columns = ("name", "address", "phone", "email")


class UserAdapter(SqlTableAdapter):
    table_name = "users"
    model = UserModel
    relationships = ("store",)


class PickupReportAdapter(SqlTableAdapter):
    table_name = "pickup_reports"
    model = PickupReportModel
    modified_column = "created_at"
    relationships = ("driver", "order.store")


class DeliveryReportAdapter(SqlTableAdapter):
    table_name = "delivery_reports"
    model = DeliveryReportModel
    modified_column = "created_at"
    relationships = ("driver", "order.store")


class TrackingEventAdapter(SqlTableAdapter):
    """Append-only delivery history."""
    table_name = "tracking_events"
    model = TrackingEventModel
    modified_column = "timestamp"
    relationships = ("order",)


class InvoiceAdapter(SqlTableAdapter):
    table_name = "invoices"
    model = InvoiceModel
    relationships = ("store", "order")


class QuoteAdapter(SqlTableAdapter):
    table_name = "quotes"
    model = QuoteModel
    relationships = ("store", "order")
