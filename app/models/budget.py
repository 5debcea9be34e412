"""
Procurement Orders - Budget Allocation Model

Ledger entry per (tenant, cost center, fiscal year). A NULL cost center is the
tenant-level allocation.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import Index, Integer, Numeric, String, Uuid, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class BudgetAllocation(BaseModel):
    """
    Allocated vs spent amounts for one budget scope.

    spent_amount only grows, and only through committed orders.
    """

    __tablename__ = "budget_allocations"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    cost_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_quarter: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    allocated_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )
    spent_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "cost_center_id", "fiscal_year", name="uq_budget_allocation_scope"),
        # NULLs are distinct in the constraint above, so the tenant-level row needs its own index
        Index(
            "uq_budget_allocation_tenant_scope",
            "tenant_id",
            "fiscal_year",
            unique=True,
            postgresql_where=text("cost_center_id IS NULL"),
            sqlite_where=text("cost_center_id IS NULL"),
        ),
    )

    @property
    def remaining_amount(self) -> Decimal:
        return (self.allocated_amount or Decimal("0")) - (self.spent_amount or Decimal("0"))
