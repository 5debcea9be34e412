"""
Procurement Orders - Order Schemas

Pydantic schemas for order creation, lifecycle events and responses.

Line item quantities and product ids are validated by the order service, so
that malformed orders surface as INVALID_ORDER rather than generic request
validation errors.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from app.models.approval import ApprovalStatus
from app.models.order import OrderPriority, OrderStatus, PaymentType
from app.models.user import Role
from app.services.order_workflow import OrderEvent


# ===========================================
# LINE ITEM SCHEMAS
# ===========================================

class OrderItemCreate(BaseModel):
    """Schema for one requested line."""
    product_id: UUID
    quantity: int = Field(..., description="Units requested; must be positive")
    notes: Optional[str] = Field(None, max_length=1000)


class OrderItemUpdate(BaseModel):
    quantity: int


class OrderItemResponse(BaseModel):
    """Line with its unit price snapshot."""
    id: UUID
    line_number: int
    product_id: UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    line_subtotal: Decimal
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ===========================================
# ORDER SCHEMAS
# ===========================================

class InstallmentConfigSchema(BaseModel):
    debit_day: Optional[int] = Field(None, description="Day of month, 1-31; 31 means last day")


class OrderCreate(BaseModel):
    """Schema for placing an order."""
    items: List[OrderItemCreate]
    payment_type: PaymentType = PaymentType.IMMEDIATE
    cost_center_id: Optional[UUID] = None
    installment_config: Optional[InstallmentConfigSchema] = None
    priority: OrderPriority = OrderPriority.MEDIUM
    shipping_address: Optional[str] = Field(None, max_length=2000)
    delivery_notes: Optional[str] = Field(None, max_length=2000)
    shipping_cost: Optional[Decimal] = Field(None, ge=0, decimal_places=2)


class OrderEventRequest(BaseModel):
    """Lifecycle event applied to an order."""
    event: OrderEvent
    reason: Optional[str] = Field(None, max_length=2000)
    target_status: Optional[OrderStatus] = Field(
        None,
        description="Only used by the override event",
    )


class OrderResponse(BaseModel):
    """Full order with items."""
    id: UUID
    tenant_id: UUID
    order_number: str
    requester_id: UUID
    cost_center_id: Optional[UUID] = None

    priority: OrderPriority
    shipping_address: Optional[str] = None
    delivery_notes: Optional[str] = None

    subtotal: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    grand_total: Decimal

    status: OrderStatus
    is_finalized: bool
    executive_review_required: bool
    rejection_reason: Optional[str] = None
    approved_by_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    actual_delivery_at: Optional[datetime] = None
    ledger_committed_at: Optional[datetime] = None

    payment_type: PaymentType
    installment_count: Optional[int] = None
    installment_amount: Optional[Decimal] = None
    final_installment_amount: Optional[Decimal] = None
    installments_received: int
    debit_day: Optional[int] = None
    first_due_date: Optional[date] = None
    last_due_date: Optional[date] = None

    version: int
    items: List[OrderItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class OrderSummaryResponse(BaseModel):
    """List view of an order."""
    id: UUID
    order_number: str
    requester_id: UUID
    cost_center_id: Optional[UUID] = None
    status: OrderStatus
    payment_type: PaymentType
    grand_total: Decimal
    priority: OrderPriority
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    orders: List[OrderSummaryResponse]
    total: int


# ===========================================
# APPROVAL SCHEMAS
# ===========================================

class ApprovalRequestResponse(BaseModel):
    id: UUID
    order_id: UUID
    requester_id: UUID
    approver_id: Optional[UUID] = None
    level: int
    required_role: Role
    amount: Decimal
    status: ApprovalStatus
    comments: Optional[str] = None
    resolved_by_id: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApprovalDecision(BaseModel):
    """Approve or reject a pending order from the approvals inbox."""
    comments: Optional[str] = Field(None, max_length=2000)
