"""
Procurement Orders - Approval Request Model

One approval request per order routed for manual review. The request only
references the order and users by id; it owns nothing.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Integer, Numeric, Text, Uuid, Enum as SQLEnum, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel
from app.models.user import Role


class ApprovalStatus(str, Enum):
    """Status of an approval request"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"


class ApprovalRequest(BaseModel):
    """
    Approval task created when an order's total needs human review.

    `approver_id` stays NULL when the tenant has nobody holding the required
    role, which keeps the order visibly stuck in PENDING.
    """

    __tablename__ = "approval_requests"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    requester_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    required_role: Mapped[Role] = mapped_column(
        SQLEnum(Role, native_enum=False, length=32),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)

    status: Mapped[ApprovalStatus] = mapped_column(
        SQLEnum(ApprovalStatus, native_enum=False, length=16),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_approval_requests_order_status", "order_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ApprovalStatus.PENDING
