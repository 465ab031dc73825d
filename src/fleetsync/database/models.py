"""
SQLAlchemy ORM models for the tables the sync engine reads and writes.

The domain tables are owned by the business modules (orders, clients,
drivers, stores, documents); only the columns that take part in
synchronization are declared here. Timestamps are stored as naive UTC.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .connection import Base


def naive_utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=naive_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=naive_utcnow, onupdate=naive_utcnow,
                                                 nullable=False, index=True)


class RemoteIdMixin:
    remote_id: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)


class StoreModel(TimestampMixin, RemoteIdMixin, Base):
    """Partner store (magasin)."""
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(300))
    phone: Mapped[Optional[str]] = mapped_column(String(40))
    email: Mapped[Optional[str]] = mapped_column(String(200))

    orders: Mapped[List["OrderModel"]] = relationship(back_populates="store")


class ClientModel(TimestampMixin, RemoteIdMixin, Base):
    """End customer receiving a delivery."""
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(120))
    phone: Mapped[Optional[str]] = mapped_column(String(40))
    secondary_phone: Mapped[Optional[str]] = mapped_column(String(40))
    address_line1: Mapped[Optional[str]] = mapped_column(String(300))
    address_type: Mapped[Optional[str]] = mapped_column(String(40))
    building: Mapped[Optional[str]] = mapped_column(String(80))
    floor: Mapped[Optional[str]] = mapped_column(String(20))
    intercom: Mapped[Optional[str]] = mapped_column(String(80))
    elevator: Mapped[Optional[bool]] = mapped_column(Boolean)

    orders: Mapped[List["OrderModel"]] = relationship(back_populates="client")


class DriverModel(TimestampMixin, RemoteIdMixin, Base):
    """Driver or crew member (chauffeur)."""
    __tablename__ = "drivers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(120))
    phone: Mapped[Optional[str]] = mapped_column(String(40))
    email: Mapped[Optional[str]] = mapped_column(String(200))
    role: Mapped[Optional[str]] = mapped_column(String(60))
    status: Mapped[Optional[str]] = mapped_column(String(40))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)


class UserModel(TimestampMixin, RemoteIdMixin, Base):
    """Back-office account."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    role: Mapped[Optional[str]] = mapped_column(String(40))
    store_id: Mapped[Optional[int]] = mapped_column(ForeignKey("stores.id"))

    store: Mapped[Optional[StoreModel]] = relationship()


class OrderModel(TimestampMixin, RemoteIdMixin, Base):
    """Delivery order (commande)."""
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    order_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    order_status: Mapped[Optional[str]] = mapped_column(String(60))
    delivery_status: Mapped[Optional[str]] = mapped_column(String(60))
    price_excl_tax: Mapped[Optional[float]] = mapped_column(Float)
    delivery_slot: Mapped[Optional[str]] = mapped_column(String(40))
    vehicle_category: Mapped[Optional[str]] = mapped_column(String(40))
    crew_option: Mapped[Optional[int]] = mapped_column(Integer)
    transport_reserve: Mapped[Optional[bool]] = mapped_column(Boolean)
    seller_first_name: Mapped[Optional[str]] = mapped_column(String(120))
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    client_id: Mapped[Optional[int]] = mapped_column(ForeignKey("clients.id"))
    store_id: Mapped[Optional[int]] = mapped_column(ForeignKey("stores.id"))

    client: Mapped[Optional[ClientModel]] = relationship(back_populates="orders")
    store: Mapped[Optional[StoreModel]] = relationship(back_populates="orders")
    articles: Mapped[List["ArticleModel"]] = relationship(back_populates="order", order_by="ArticleModel.id")


class ArticleModel(Base):
    """Item carried as part of an order."""
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    details: Mapped[Optional[str]] = mapped_column(Text)

    order: Mapped[OrderModel] = relationship(back_populates="articles")


class ReportMixin(RemoteIdMixin):
    """Columns shared by pickup and delivery reports."""
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    comment: Mapped[Optional[str]] = mapped_column(Text)
    report_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=naive_utcnow, nullable=False, index=True)


class PickupReportModel(ReportMixin, Base):
    """Driver report written at pickup."""
    __tablename__ = "pickup_reports"

    driver_id: Mapped[Optional[int]] = mapped_column(ForeignKey("drivers.id"))
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"))

    driver: Mapped[Optional[DriverModel]] = relationship()
    order: Mapped[Optional[OrderModel]] = relationship()


class DeliveryReportModel(ReportMixin, Base):
    """Driver report written at delivery."""
    __tablename__ = "delivery_reports"

    driver_id: Mapped[Optional[int]] = mapped_column(ForeignKey("drivers.id"))
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"))

    driver: Mapped[Optional[DriverModel]] = relationship()
    order: Mapped[Optional[OrderModel]] = relationship()


class TrackingEventModel(RemoteIdMixin, Base):
    """Delivery history event."""
    __tablename__ = "tracking_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(60), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=naive_utcnow, nullable=False, index=True)
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"))

    order: Mapped[Optional[OrderModel]] = relationship()


class InvoiceModel(TimestampMixin, RemoteIdMixin, Base):
    """Invoice (facture)."""
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    invoice_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    status: Mapped[Optional[str]] = mapped_column(String(40))
    store_id: Mapped[Optional[int]] = mapped_column(ForeignKey("stores.id"))
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"))

    store: Mapped[Optional[StoreModel]] = relationship()
    order: Mapped[Optional[OrderModel]] = relationship()


class QuoteModel(TimestampMixin, RemoteIdMixin, Base):
    """Quote (devis)."""
    __tablename__ = "quotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quote_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    quote_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    status: Mapped[Optional[str]] = mapped_column(String(40))
    store_id: Mapped[Optional[int]] = mapped_column(ForeignKey("stores.id"))
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"))

    store: Mapped[Optional[StoreModel]] = relationship()
    order: Mapped[Optional[OrderModel]] = relationship()


class SyncLogModel(Base):
    """Watermark and last outcome of one table leg."""
    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    last_sync_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text)
    direction: Mapped[str] = mapped_column(String(10), nullable=False, default="push")
    records_synced: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=naive_utcnow, onupdate=naive_utcnow)
