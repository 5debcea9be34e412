"""
Procurement Orders - Approval Policy Model

Per-tenant override of the approval threshold table. Tenants without a row use
the defaults from settings.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import Numeric, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class ApprovalPolicy(BaseModel):
    """Threshold table for one tenant."""

    __tablename__ = "approval_policies"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), unique=True, nullable=False)

    auto_approve_threshold: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    supervisor_threshold: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    procurement_threshold: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    executive_review_threshold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=True,
    )
