"""
Procurement Orders - Budget Ledger Service

Allocated vs spent amounts per (tenant, cost center, fiscal year).

Includes:
- Spend commits from approved orders (exactly once per order)
- Budget allocation create/update
- Budget summary per tenant and fiscal year

spent_amount only ever grows, and only through `commit`, which increments it
in the database rather than writing back a value read earlier. Orders without a
cost center draw down the tenant-level allocation (cost_center_id NULL).
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.budget import BudgetAllocation
from app.utils.error_handling import LedgerCommitException, ValidationException, ErrorCode

logger = logging.getLogger(__name__)


@dataclass
class BudgetSummary:
    tenant_id: uuid.UUID
    fiscal_year: int
    total_allocated: Decimal
    total_spent: Decimal
    remaining: Decimal
    allocations: List[BudgetAllocation] = field(default_factory=list)


def _scope(tenant_id: uuid.UUID, cost_center_id: Optional[uuid.UUID], fiscal_year: int) -> list:
    criteria = [
        BudgetAllocation.tenant_id == tenant_id,
        BudgetAllocation.fiscal_year == fiscal_year,
    ]
    if cost_center_id is None:
        criteria.append(BudgetAllocation.cost_center_id.is_(None))
    else:
        criteria.append(BudgetAllocation.cost_center_id == cost_center_id)
    return criteria


class BudgetLedgerService:
    """Service for budget ledger operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def get_allocation(
        self,
        tenant_id: uuid.UUID,
        cost_center_id: Optional[uuid.UUID],
        fiscal_year: int,
        reload: bool = False,
    ) -> Optional[BudgetAllocation]:
        query = select(BudgetAllocation).where(*_scope(tenant_id, cost_center_id, fiscal_year))
        if reload:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_allocations(self, tenant_id: uuid.UUID, fiscal_year: int) -> List[BudgetAllocation]:
        result = await self.db.execute(
            select(BudgetAllocation)
            .where(
                BudgetAllocation.tenant_id == tenant_id,
                BudgetAllocation.fiscal_year == fiscal_year,
            )
            .order_by(BudgetAllocation.created_at)
        )
        return list(result.scalars().all())

    # =========================================================================
    # SPEND COMMITS
    # =========================================================================

    async def commit(
        self,
        tenant_id: uuid.UUID,
        cost_center_id: Optional[uuid.UUID],
        amount: Decimal,
        committed_at: datetime,
    ) -> BudgetAllocation:
        """
        Add `amount` to the spent total of the matching allocation.

        The increment is a single UPDATE evaluated by the database, so commits
        from different orders never overwrite each other. Creates the
        allocation (allocated 0, spent = amount) when the period has none yet;
        losing that insert to a concurrent commit falls back to the increment.
        Flushes but does not commit, so the spend lands in the same
        transaction as the order's state change.

        Raises:
            LedgerCommitException: the ledger write failed
        """
        fiscal_year = committed_at.year
        try:
            if await self._add_spend(tenant_id, cost_center_id, fiscal_year, amount) == 0:
                created = await self._create_allocation(
                    tenant_id, cost_center_id, fiscal_year, spent_amount=amount
                )
                if created is None:
                    await self._add_spend(tenant_id, cost_center_id, fiscal_year, amount)
            allocation = await self.get_allocation(tenant_id, cost_center_id, fiscal_year, reload=True)
        except SQLAlchemyError as e:
            logger.error(
                f"Ledger commit of {amount} failed for tenant {tenant_id} "
                f"cost center {cost_center_id}: {e}"
            )
            raise LedgerCommitException(original_error=e) from e

        logger.info(
            f"Ledger: +{amount} spent for tenant {tenant_id} cost center {cost_center_id} "
            f"FY{fiscal_year} (spent now {allocation.spent_amount})"
        )
        return allocation

    async def _add_spend(
        self,
        tenant_id: uuid.UUID,
        cost_center_id: Optional[uuid.UUID],
        fiscal_year: int,
        amount: Decimal,
    ) -> int:
        """Increment spent in place. Returns the number of rows touched."""
        result = await self.db.execute(
            update(BudgetAllocation)
            .where(*_scope(tenant_id, cost_center_id, fiscal_year))
            .values(spent_amount=BudgetAllocation.spent_amount + amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def _create_allocation(
        self,
        tenant_id: uuid.UUID,
        cost_center_id: Optional[uuid.UUID],
        fiscal_year: int,
        allocated_amount: Decimal = Decimal("0.00"),
        spent_amount: Decimal = Decimal("0.00"),
    ) -> Optional[BudgetAllocation]:
        """
        Insert a new scope row inside a savepoint.

        Returns None when another transaction created the same scope first;
        the outer transaction stays usable.
        """
        allocation = BudgetAllocation(
            tenant_id=tenant_id,
            cost_center_id=cost_center_id,
            fiscal_year=fiscal_year,
            allocated_amount=allocated_amount,
            spent_amount=spent_amount,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(allocation)
                await self.db.flush()
        except IntegrityError:
            logger.info(
                f"Budget scope tenant {tenant_id} cost center {cost_center_id} FY{fiscal_year} "
                f"created concurrently"
            )
            return None
        return allocation

    # =========================================================================
    # ALLOCATION MANAGEMENT
    # =========================================================================

    async def allocate(
        self,
        tenant_id: uuid.UUID,
        fiscal_year: int,
        allocated_amount: Decimal,
        cost_center_id: Optional[uuid.UUID] = None,
        fiscal_quarter: Optional[int] = None,
        category: Optional[str] = None,
    ) -> BudgetAllocation:
        """Create or update the allocated amount for a budget scope. Spent is untouched."""
        if allocated_amount < 0:
            raise ValidationException(
                "Allocated amount cannot be negative",
                field="allocated_amount",
                code=ErrorCode.INVALID_AMOUNT,
            )

        allocation = await self.get_allocation(tenant_id, cost_center_id, fiscal_year)
        if allocation is None:
            allocation = await self._create_allocation(
                tenant_id, cost_center_id, fiscal_year, allocated_amount=allocated_amount
            )
        if allocation is None:
            allocation = await self.get_allocation(tenant_id, cost_center_id, fiscal_year)

        allocation.allocated_amount = allocated_amount
        allocation.fiscal_quarter = fiscal_quarter
        allocation.category = category

        await self.db.commit()
        await self.db.refresh(allocation)

        logger.info(
            f"Allocated {allocated_amount} to tenant {tenant_id} cost center {cost_center_id} FY{fiscal_year}"
        )
        return allocation

    # =========================================================================
    # REPORTING
    # =========================================================================

    async def get_summary(self, tenant_id: uuid.UUID, fiscal_year: int) -> BudgetSummary:
        allocations = await self.get_allocations(tenant_id, fiscal_year)
        total_allocated = sum((a.allocated_amount for a in allocations), Decimal("0.00"))
        total_spent = sum((a.spent_amount for a in allocations), Decimal("0.00"))
        return BudgetSummary(
            tenant_id=tenant_id,
            fiscal_year=fiscal_year,
            total_allocated=total_allocated,
            total_spent=total_spent,
            remaining=total_allocated - total_spent,
            allocations=allocations,
        )
