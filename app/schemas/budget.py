"""
Procurement Orders - Budget Schemas
"""

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict


class BudgetAllocationCreate(BaseModel):
    """Create or update the allocation for a (cost center, fiscal year) scope."""
    fiscal_year: int = Field(..., ge=2000, le=2100)
    allocated_amount: Decimal = Field(..., ge=0)
    cost_center_id: Optional[UUID] = None
    fiscal_quarter: Optional[int] = Field(None, ge=1, le=4)
    category: Optional[str] = Field(None, max_length=100)


class BudgetAllocationResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    cost_center_id: Optional[UUID] = None
    fiscal_year: int
    fiscal_quarter: Optional[int] = None
    category: Optional[str] = None
    allocated_amount: Decimal
    spent_amount: Decimal
    remaining_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class BudgetSummaryResponse(BaseModel):
    tenant_id: UUID
    fiscal_year: int
    total_allocated: Decimal
    total_spent: Decimal
    remaining: Decimal
    allocations: List[BudgetAllocationResponse]

    model_config = ConfigDict(from_attributes=True)
