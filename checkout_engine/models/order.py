"""SQLAlchemy models for orders and their payment records."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    """
    A storefront order as seen by the payment engine.

    Only the payment-relevant subset of the order is modelled here. The
    order_number is the business key that payment providers echo back in
    callbacks; the id is the opaque internal key.
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = Column(String(50), nullable=False, unique=True, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="pending")
    payment_status = Column(String(30), nullable=False, default="pending")
    payment_method = Column(String(30), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    transactions = relationship("PaymentTransaction", back_populates="order", lazy="raise")


class PaymentTransaction(Base):
    """
    Provider transaction log, one row per provider transaction id.

    transaction_id is the idempotency key: a redelivered notification updates
    the existing row instead of adding a second one.
    """

    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    payment_method = Column(String(30), nullable=False)
    transaction_id = Column(String(100), nullable=False, unique=True)
    amount = Column(Numeric(12, 2), nullable=True)
    status = Column(String(30), nullable=False)
    gateway_response = Column(Text, nullable=True)  # raw provider payload as JSON
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    order = relationship("Order", back_populates="transactions")


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Dispatches, provider notifications (accepted or rejected) and
    cancellations each append one entry. Rows are never updated.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)
