"""
Procurement Orders - Approvals Router

Approver inbox: pending requests plus approve/reject shortcuts.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user, get_order_service
from app.models.user import User
from app.schemas.order import ApprovalDecision, ApprovalRequestResponse, OrderResponse
from app.services.order_service import OrderService
from app.services.order_workflow import OrderEvent, TransitionPayload

router = APIRouter(prefix="/api/v1/approvals", tags=["Approvals"])


@router.get("/pending", response_model=List[ApprovalRequestResponse])
async def get_pending_approvals(
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Pending approval requests assigned to the current user."""
    requests = await service.get_pending_approvals(current_user)
    return [ApprovalRequestResponse.model_validate(r) for r in requests]


@router.post("/orders/{order_id}/approve", response_model=OrderResponse)
async def approve_order(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = await service.transition(order_id, OrderEvent.APPROVE, current_user)
    return OrderResponse.model_validate(order)


@router.post("/orders/{order_id}/reject", response_model=OrderResponse)
async def reject_order(
    order_id: UUID,
    request: ApprovalDecision,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Decline a pending order; `comments` is the required reason."""
    order = await service.transition(
        order_id,
        OrderEvent.REJECT,
        current_user,
        TransitionPayload(reason=request.comments),
    )
    return OrderResponse.model_validate(order)
