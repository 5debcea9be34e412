"""
Procurement Orders - Orders Router

API endpoints for placing orders and driving them through their lifecycle.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_current_user, get_order_service
from app.models.order import OrderStatus
from app.models.user import User
from app.schemas.order import (
    ApprovalRequestResponse,
    OrderCreate,
    OrderEventRequest,
    OrderItemUpdate,
    OrderListResponse,
    OrderResponse,
    OrderSummaryResponse,
)
from app.services.order_service import InstallmentConfig, LineItemInput, OrderService
from app.services.order_workflow import TransitionPayload

router = APIRouter(prefix="/api/v1/orders", tags=["Orders"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: OrderCreate,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Place an order; small orders are approved immediately."""
    installment_config = None
    if request.installment_config is not None:
        installment_config = InstallmentConfig(debit_day=request.installment_config.debit_day)

    order = await service.create_order(
        requester=current_user,
        items=[
            LineItemInput(product_id=item.product_id, quantity=item.quantity, notes=item.notes)
            for item in request.items
        ],
        payment_type=request.payment_type,
        cost_center_id=request.cost_center_id,
        installment_config=installment_config,
        priority=request.priority,
        shipping_address=request.shipping_address,
        delivery_notes=request.delivery_notes,
        shipping_cost=request.shipping_cost,
    )
    return OrderResponse.model_validate(order)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    cost_center_id: Optional[UUID] = Query(None),
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Orders visible to the current user's role."""
    orders = await service.list_orders_for(current_user, status=status_filter, cost_center_id=cost_center_id)
    return OrderListResponse(
        orders=[OrderSummaryResponse.model_validate(o) for o in orders],
        total=len(orders),
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get_order(order_id, current_user)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/events", response_model=OrderResponse)
async def apply_event(
    order_id: UUID,
    request: OrderEventRequest,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Apply a lifecycle event (approve, reject, cancel, return, acknowledge, ...)."""
    order = await service.transition(
        order_id,
        request.event,
        current_user,
        TransitionPayload(reason=request.reason, target_status=request.target_status),
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/installments", response_model=OrderResponse)
async def record_installment(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Mark the next installment as received."""
    order = await service.record_installment_payment(order_id, current_user)
    return OrderResponse.model_validate(order)


@router.patch("/{order_id}/items/{item_id}", response_model=OrderResponse)
async def edit_item(
    order_id: UUID,
    item_id: UUID,
    request: OrderItemUpdate,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = await service.edit_line_item(order_id, item_id, request.quantity, current_user)
    return OrderResponse.model_validate(order)


@router.delete("/{order_id}/items/{item_id}", response_model=OrderResponse)
async def remove_item(
    order_id: UUID,
    item_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = await service.remove_line_item(order_id, item_id, current_user)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/finalize", response_model=OrderResponse)
async def mark_final(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Lock the order's items."""
    order = await service.mark_final(order_id, current_user)
    return OrderResponse.model_validate(order)


@router.get("/{order_id}/approvals", response_model=List[ApprovalRequestResponse])
async def get_order_approvals(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    requests = await service.get_approval_requests(order_id, current_user)
    return [ApprovalRequestResponse.model_validate(r) for r in requests]
