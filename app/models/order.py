"""
Procurement Orders - Order Model

Order aggregate (header + line items) for both the office-supplies and the
school-stationery storefronts.

Lifecycle:
PENDING -> APPROVED -> ACKNOWLEDGED -> IN_PROCESS -> FINALIZING
        -> OUT_FOR_DELIVERY -> DELIVERED -> CLOSED
Side exits: DECLINED, CANCELLED, RETURNED (all terminal).

Money columns are Numeric(15, 2); totals are computed in Python with Decimal
and never through floats.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum, CheckConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel


class OrderStatus(str, Enum):
    """Order lifecycle states."""
    PENDING = "pending"                    # Awaiting financial clearance
    APPROVED = "approved"                  # Financially committed
    ACKNOWLEDGED = "acknowledged"          # Operations accepted the order
    IN_PROCESS = "in_process"              # Being fulfilled (may be held for review)
    FINALIZING = "finalizing"              # Payment verified, preparing shipment
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CLOSED = "closed"                      # Terminal success
    DECLINED = "declined"                  # Terminal
    CANCELLED = "cancelled"                # Terminal
    RETURNED = "returned"                  # Terminal, pre-payment verification failed


TERMINAL_STATUSES = frozenset({
    OrderStatus.CLOSED,
    OrderStatus.DECLINED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
})

# Line items may only change before the order is approved
EDITABLE_STATUSES = frozenset({OrderStatus.PENDING})


class PaymentType(str, Enum):
    IMMEDIATE = "immediate"
    INSTALLMENT = "installment"


class OrderPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Order(BaseModel):
    """
    Order aggregate root.

    `version` is the optimistic concurrency counter; SQLAlchemy bumps it on
    every UPDATE and refuses stale writes.
    """

    __tablename__ = "orders"

    # Identity
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    cost_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # Header details
    priority: Mapped[OrderPriority] = mapped_column(
        SQLEnum(OrderPriority, native_enum=False, length=16),
        default=OrderPriority.MEDIUM,
        nullable=False,
    )
    shipping_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Financials
    subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"))
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"))
    grand_total: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"))

    # Lifecycle
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, native_enum=False, length=32),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    is_finalized: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    executive_review_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_delivery_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Set once, when the grand total is drawn down from the budget ledger
    ledger_committed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Payment
    payment_type: Mapped[PaymentType] = mapped_column(
        SQLEnum(PaymentType, native_enum=False, length=16),
        nullable=False,
        default=PaymentType.IMMEDIATE,
    )
    installment_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    installment_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=15, scale=2), nullable=True)
    installments_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    debit_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    first_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.line_number",
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        CheckConstraint("installments_received >= 0", name="installments_received_non_negative"),
        Index("ix_orders_tenant_status", "tenant_id", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def final_installment_amount(self) -> Optional[Decimal]:
        """Last installment absorbs the rounding residual."""
        if self.payment_type != PaymentType.INSTALLMENT or not self.installment_count:
            return None
        return self.grand_total - self.installment_amount * (self.installment_count - 1)


class OrderItem(BaseModel):
    """Order line with the unit price snapshotted at order time."""

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    line_subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order: Mapped["Order"] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="quantity_positive"),
    )
