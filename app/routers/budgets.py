"""
Procurement Orders - Budget Ledger Router

API endpoints for budget allocations and the spend summary.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_budget_ledger, require_role
from app.models.user import Role, User
from app.schemas.budget import (
    BudgetAllocationCreate,
    BudgetAllocationResponse,
    BudgetSummaryResponse,
)
from app.services.budget_ledger import BudgetLedgerService
from app.utils.error_handling import ForbiddenException, ValidationException

router = APIRouter(prefix="/api/v1/budgets", tags=["Budgets"])


def _resolve_tenant(current_user: User, tenant_id: Optional[UUID]) -> UUID:
    """Super admins name the tenant; everyone else is pinned to their own."""
    if current_user.role == Role.SUPER_ADMIN:
        if tenant_id is None:
            raise ValidationException("tenant_id is required", field="tenant_id")
        return tenant_id
    if tenant_id is not None and tenant_id != current_user.tenant_id:
        raise ForbiddenException("Cannot access another tenant's budget")
    return current_user.tenant_id


@router.post(
    "/allocations",
    response_model=BudgetAllocationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def allocate_budget(
    request: BudgetAllocationCreate,
    tenant_id: Optional[UUID] = Query(None),
    current_user: User = Depends(require_role(Role.EXECUTIVE_ADMIN)),
    ledger: BudgetLedgerService = Depends(get_budget_ledger),
):
    """Create or update the allocated amount for a budget scope."""
    allocation = await ledger.allocate(
        tenant_id=_resolve_tenant(current_user, tenant_id),
        fiscal_year=request.fiscal_year,
        allocated_amount=request.allocated_amount,
        cost_center_id=request.cost_center_id,
        fiscal_quarter=request.fiscal_quarter,
        category=request.category,
    )
    return BudgetAllocationResponse.model_validate(allocation)


@router.get("/summary", response_model=BudgetSummaryResponse)
async def get_budget_summary(
    fiscal_year: Optional[int] = Query(None, ge=2000, le=2100),
    tenant_id: Optional[UUID] = Query(None),
    current_user: User = Depends(require_role(Role.SUPERVISOR)),
    ledger: BudgetLedgerService = Depends(get_budget_ledger),
):
    """Allocated, spent and remaining totals for a fiscal year (current year by default)."""
    summary = await ledger.get_summary(
        _resolve_tenant(current_user, tenant_id),
        fiscal_year or datetime.utcnow().year,
    )
    return BudgetSummaryResponse.model_validate(summary)
