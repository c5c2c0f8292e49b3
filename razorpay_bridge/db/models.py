"""
ORM models for the records the bridge keeps in sync with Razorpay.

All monetary columns hold integer local minor units (amount × 100).
JSON columns are replaced, never mutated in place, so SQLAlchemy picks
up every change.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from razorpay_bridge.domain.status import (
    OrderStatus,
    OrderType,
    PaymentStatus,
    SubscriptionStatus,
    TransactionStatus,
    TransactionType,
)


def _uuid() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class MetaMixin:
    """Helpers for the `meta` JSON column."""

    meta: Mapped[Dict[str, Any]]

    def get_meta(self, key: str, default: Any = None) -> Any:
        return (self.meta or {}).get(key, default)

    def update_meta(self, key: str, value: Any) -> None:
        self.meta = {**(self.meta or {}), key: value}

    def merge_meta(self, values: Dict[str, Any]) -> None:
        self.meta = {**(self.meta or {}), **values}


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), default="")
    last_name: Mapped[str] = mapped_column(String(100), default="")
    email: Mapped[str] = mapped_column(String(255), default="", index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    vendor_customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    uuid: Mapped[str] = mapped_column(String(64), unique=True, default=_uuid)
    type: Mapped[str] = mapped_column(String(20), default=OrderType.PAYMENT)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING)
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING)
    mode: Mapped[str] = mapped_column(String(10), default="test")
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"), nullable=True)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"), nullable=True)
    total_amount: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    items: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class OrderTransaction(MetaMixin, Base):
    __tablename__ = "order_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    uuid: Mapped[str] = mapped_column(String(64), unique=True, default=_uuid)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    subscription_id: Mapped[Optional[int]] = mapped_column(ForeignKey("subscriptions.id"), nullable=True)
    transaction_type: Mapped[str] = mapped_column(String(20), default=TransactionType.CHARGE)
    status: Mapped[str] = mapped_column(String(20), default=TransactionStatus.PENDING)
    payment_method: Mapped[str] = mapped_column(String(30), default="razorpay")
    payment_mode: Mapped[str] = mapped_column(String(10), default="test")
    payment_method_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    vendor_charge_id: Mapped[str] = mapped_column(String(64), default="", index=True)
    total: Mapped[int] = mapped_column(Integer, default=0)
    refunded_total: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    card_last_4: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    card_brand: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    meta: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)


class Subscription(MetaMixin, Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    uuid: Mapped[str] = mapped_column(String(64), unique=True, default=_uuid)
    parent_order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"), nullable=True)
    item_name: Mapped[str] = mapped_column(String(255), default="")
    variation_id: Mapped[int] = mapped_column(Integer, default=0)
    recurring_total: Mapped[int] = mapped_column(Integer, default=0)
    billing_interval: Mapped[str] = mapped_column(String(20), default="monthly")
    bill_times: Mapped[int] = mapped_column(Integer, default=0)
    bill_count: Mapped[int] = mapped_column(Integer, default=0)
    trial_days: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=SubscriptionStatus.PENDING)
    vendor_subscription_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    vendor_plan_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    vendor_customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    current_payment_method: Mapped[str] = mapped_column(String(30), default="razorpay")
    next_billing_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expire_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    meta: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    vendor_response: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    @property
    def reactivation_trial_days(self) -> int:
        return int(self.get_meta("reactivation_trial_days", 0) or 0)

    def apply(self, values: Dict[str, Any]) -> None:
        """Assign a dict of column values."""
        for key, value in values.items():
            setattr(self, key, value)


class VendorPlan(Base):
    __tablename__ = "vendor_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    plan_key: Mapped[str] = mapped_column(String(191), unique=True)
    vendor_plan_id: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255))
    content: Mapped[str] = mapped_column(Text, default="")
    level: Mapped[str] = mapped_column(String(20), default="info")
    module_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    module_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
