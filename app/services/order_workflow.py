"""
Procurement Orders - Order Lifecycle State Machine

Pure guard evaluation for order events. Nothing in this module touches the
database: `evaluate_transition` looks at the order, the actor, the active
approval request and the tenant's threshold policy, and returns a
TransitionPlan describing either the rejection (an ErrorCode and message) or
the new status plus the side effects the service must apply.

Transition table:

    PENDING            approve           -> APPROVED          approver or override; ledger commit
    PENDING            reject            -> DECLINED          approver or override; reason
    PENDING            cancel            -> CANCELLED         requester or cancel-any
    PENDING            return            -> RETURNED          operations
    APPROVED           acknowledge       -> ACKNOWLEDGED      operations
    ACKNOWLEDGED       start_processing  -> IN_PROCESS        operations; hold if high value
    IN_PROCESS (held)  executive_approve -> IN_PROCESS        executive sign-off; clears hold
    IN_PROCESS (held)  reject            -> DECLINED          executive sign-off; reason
    IN_PROCESS         verify_payment    -> FINALIZING        operations; not held
    FINALIZING         dispatch          -> OUT_FOR_DELIVERY  operations
    OUT_FOR_DELIVERY   deliver           -> DELIVERED         operations; finalize
    DELIVERED          close             -> CLOSED            operations; finalize
    CLOSED             close             -> CLOSED            no-op
    non-terminal       override          -> any other         status override
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from app.models.approval import ApprovalRequest, ApprovalStatus
from app.models.notification import NotificationType
from app.models.order import Order, OrderStatus, PaymentType, TERMINAL_STATUSES
from app.models.user import Role
from app.services.approval_router import ThresholdPolicy
from app.utils.error_handling import (
    ErrorCode,
    ForbiddenException,
    IllegalTransitionException,
    ValidationException,
)
from app.utils.permissions import Actor, Authority, has_authority


class OrderEvent(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    RETURN = "return"
    ACKNOWLEDGE = "acknowledge"
    START_PROCESSING = "start_processing"
    EXECUTIVE_APPROVE = "executive_approve"
    VERIFY_PAYMENT = "verify_payment"
    DISPATCH = "dispatch"
    DELIVER = "deliver"
    CLOSE = "close"
    OVERRIDE = "override"


# Straight-through fulfilment steps, all performed by operations
FULFILMENT_STEPS: Dict[OrderEvent, tuple] = {
    OrderEvent.ACKNOWLEDGE: (OrderStatus.APPROVED, OrderStatus.ACKNOWLEDGED),
    OrderEvent.VERIFY_PAYMENT: (OrderStatus.IN_PROCESS, OrderStatus.FINALIZING),
    OrderEvent.DISPATCH: (OrderStatus.FINALIZING, OrderStatus.OUT_FOR_DELIVERY),
    OrderEvent.DELIVER: (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
    OrderEvent.CLOSE: (OrderStatus.DELIVERED, OrderStatus.CLOSED),
}

# Statuses an order only reaches after its spend was committed
COMMITTED_STATUSES = frozenset({
    OrderStatus.APPROVED,
    OrderStatus.ACKNOWLEDGED,
    OrderStatus.IN_PROCESS,
    OrderStatus.FINALIZING,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
    OrderStatus.CLOSED,
})

DEFAULT_RETURN_REASON = "Payment not received"


@dataclass(frozen=True)
class TransitionPayload:
    reason: Optional[str] = None
    target_status: Optional[OrderStatus] = None


@dataclass
class TransitionPlan:
    """Outcome of guard evaluation for one event."""

    event: OrderEvent
    from_status: OrderStatus
    to_status: Optional[OrderStatus] = None
    error: Optional[ErrorCode] = None
    message: Optional[str] = None

    no_op: bool = False
    commit_ledger: bool = False
    stamp_approval: bool = False
    stamp_delivery: bool = False
    finalize: bool = False
    review_hold: Optional[bool] = None
    rejection_reason: Optional[str] = None
    resolve_request: Optional[ApprovalStatus] = None
    notification: Optional[NotificationType] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_if_rejected(self) -> None:
        """Convert a rejected plan into the matching typed exception."""
        if self.error is None:
            return
        if self.error == ErrorCode.FORBIDDEN:
            raise ForbiddenException(self.message)
        if self.error == ErrorCode.REASON_REQUIRED:
            raise ValidationException(self.message, field="reason", code=ErrorCode.REASON_REQUIRED)
        raise IllegalTransitionException(self.from_status.value, self.event.value, self.message)


def _illegal(event: OrderEvent, order: Order, message: Optional[str] = None) -> TransitionPlan:
    return TransitionPlan(
        event=event,
        from_status=order.status,
        error=ErrorCode.ILLEGAL_TRANSITION,
        message=message,
    )


def _forbidden(event: OrderEvent, order: Order, message: str) -> TransitionPlan:
    return TransitionPlan(event=event, from_status=order.status, error=ErrorCode.FORBIDDEN, message=message)


def _reason_required(event: OrderEvent, order: Order) -> TransitionPlan:
    return TransitionPlan(
        event=event,
        from_status=order.status,
        error=ErrorCode.REASON_REQUIRED,
        message="A non-blank reason is required",
    )


def _is_resolved_approver(actor: Actor, request: Optional[ApprovalRequest]) -> bool:
    return request is not None and request.approver_id is not None and request.approver_id == actor.id


def evaluate_transition(
    order: Order,
    event: OrderEvent,
    actor: Actor,
    policy: ThresholdPolicy,
    payload: Optional[TransitionPayload] = None,
    active_request: Optional[ApprovalRequest] = None,
) -> TransitionPlan:
    """
    Evaluate `event` against `order` on behalf of `actor`.

    Checks run in a fixed order: tenant membership, state legality, actor
    authority, then payload requirements.
    """
    payload = payload or TransitionPayload()
    status = order.status

    if actor.role != Role.SUPER_ADMIN and actor.tenant_id != order.tenant_id:
        return _forbidden(event, order, "Order belongs to another tenant")

    if event == OrderEvent.OVERRIDE:
        return _evaluate_override(order, actor, payload, active_request)

    if event == OrderEvent.CLOSE and status == OrderStatus.CLOSED:
        if not has_authority(actor.role, Authority.OPERATIONS):
            return _forbidden(event, order, "Only operations may close orders")
        return TransitionPlan(event=event, from_status=status, to_status=status, no_op=True)

    if status in TERMINAL_STATUSES:
        return _illegal(event, order, f"Order is in terminal status '{status.value}'")

    if event in (OrderEvent.APPROVE, OrderEvent.REJECT) and status == OrderStatus.PENDING:
        return _evaluate_pending_decision(order, event, actor, payload, active_request)

    if event == OrderEvent.REJECT:
        return _evaluate_held_decline(order, actor, payload)

    if event == OrderEvent.CANCEL:
        if status != OrderStatus.PENDING:
            return _illegal(event, order)
        if actor.id != order.requester_id and not has_authority(actor.role, Authority.CANCEL_ANY):
            return _forbidden(event, order, "Only the requester or an admin may cancel this order")
        return TransitionPlan(
            event=event,
            from_status=status,
            to_status=OrderStatus.CANCELLED,
            resolve_request=ApprovalStatus.REJECTED,
            notification=NotificationType.ORDER_CANCELLED,
        )

    if event == OrderEvent.RETURN:
        if status != OrderStatus.PENDING:
            return _illegal(event, order)
        if not has_authority(actor.role, Authority.OPERATIONS):
            return _forbidden(event, order, "Only operations may return orders")
        reason = (payload.reason or "").strip() or DEFAULT_RETURN_REASON
        return TransitionPlan(
            event=event,
            from_status=status,
            to_status=OrderStatus.RETURNED,
            rejection_reason=reason,
            resolve_request=ApprovalStatus.REJECTED,
            notification=NotificationType.ORDER_RETURNED,
        )

    if event == OrderEvent.START_PROCESSING:
        if status != OrderStatus.ACKNOWLEDGED:
            return _illegal(event, order)
        if not has_authority(actor.role, Authority.OPERATIONS):
            return _forbidden(event, order, "Only operations may start processing")
        held = policy.requires_executive_review(order.grand_total)
        return TransitionPlan(
            event=event,
            from_status=status,
            to_status=OrderStatus.IN_PROCESS,
            review_hold=held,
            notification=NotificationType.EXECUTIVE_REVIEW_REQUIRED if held else None,
        )

    if event == OrderEvent.EXECUTIVE_APPROVE:
        if status != OrderStatus.IN_PROCESS or not order.executive_review_required:
            return _illegal(event, order, "Order is not awaiting executive sign-off")
        if not has_authority(actor.role, Authority.EXECUTIVE_SIGN_OFF):
            return _forbidden(event, order, "Executive sign-off required")
        return TransitionPlan(
            event=event,
            from_status=status,
            to_status=OrderStatus.IN_PROCESS,
            review_hold=False,
        )

    if event in FULFILMENT_STEPS:
        expected, target = FULFILMENT_STEPS[event]
        if status != expected:
            return _illegal(event, order)
        if event == OrderEvent.VERIFY_PAYMENT and order.executive_review_required:
            return _illegal(event, order, "Order is held for executive sign-off")
        if not has_authority(actor.role, Authority.OPERATIONS):
            return _forbidden(event, order, f"Only operations may {event.value.replace('_', ' ')}")
        return TransitionPlan(
            event=event,
            from_status=status,
            to_status=target,
            stamp_delivery=event == OrderEvent.DELIVER,
            finalize=target in (OrderStatus.DELIVERED, OrderStatus.CLOSED),
            notification=NotificationType.ORDER_DELIVERED if event == OrderEvent.DELIVER else None,
        )

    return _illegal(event, order)


def _evaluate_pending_decision(
    order: Order,
    event: OrderEvent,
    actor: Actor,
    payload: TransitionPayload,
    active_request: Optional[ApprovalRequest],
) -> TransitionPlan:
    if not (_is_resolved_approver(actor, active_request) or has_authority(actor.role, Authority.APPROVAL_OVERRIDE)):
        return _forbidden(event, order, "You are not the approver for this order")

    if event == OrderEvent.APPROVE:
        if order.payment_type == PaymentType.INSTALLMENT:
            return _illegal(event, order, "Installment orders are approved by their final installment")
        return TransitionPlan(
            event=event,
            from_status=order.status,
            to_status=OrderStatus.APPROVED,
            commit_ledger=order.ledger_committed_at is None,
            stamp_approval=True,
            resolve_request=ApprovalStatus.APPROVED,
            notification=NotificationType.ORDER_APPROVED,
        )

    reason = (payload.reason or "").strip()
    if not reason:
        return _reason_required(event, order)
    return TransitionPlan(
        event=event,
        from_status=order.status,
        to_status=OrderStatus.DECLINED,
        rejection_reason=reason,
        resolve_request=ApprovalStatus.REJECTED,
        notification=NotificationType.ORDER_DECLINED,
    )


def _evaluate_held_decline(order: Order, actor: Actor, payload: TransitionPayload) -> TransitionPlan:
    event = OrderEvent.REJECT
    if order.status != OrderStatus.IN_PROCESS or not order.executive_review_required:
        return _illegal(event, order)
    if not has_authority(actor.role, Authority.EXECUTIVE_SIGN_OFF):
        return _forbidden(event, order, "Executive sign-off required")
    reason = (payload.reason or "").strip()
    if not reason:
        return _reason_required(event, order)
    return TransitionPlan(
        event=event,
        from_status=order.status,
        to_status=OrderStatus.DECLINED,
        rejection_reason=reason,
        review_hold=False,
        notification=NotificationType.ORDER_DECLINED,
    )


def _evaluate_override(
    order: Order,
    actor: Actor,
    payload: TransitionPayload,
    active_request: Optional[ApprovalRequest],
) -> TransitionPlan:
    event = OrderEvent.OVERRIDE
    if not has_authority(actor.role, Authority.STATUS_OVERRIDE):
        return _forbidden(event, order, "Only a super admin may override order status")
    if order.status in TERMINAL_STATUSES:
        return _illegal(event, order, f"Order is in terminal status '{order.status.value}'")

    target = payload.target_status
    if target is None or target == order.status:
        return _illegal(event, order, "Override needs a target status different from the current one")

    committed = target in COMMITTED_STATUSES
    resolve = None
    if order.status == OrderStatus.PENDING and active_request is not None:
        resolve = ApprovalStatus.APPROVED if committed else ApprovalStatus.REJECTED

    return TransitionPlan(
        event=event,
        from_status=order.status,
        to_status=target,
        commit_ledger=committed and order.ledger_committed_at is None,
        finalize=target in (OrderStatus.DELIVERED, OrderStatus.CLOSED),
        review_hold=None if target == OrderStatus.IN_PROCESS else False,
        resolve_request=resolve,
    )


def installment_clearance_plan(order: Order) -> TransitionPlan:
    """PENDING -> APPROVED once the final installment is in."""
    return TransitionPlan(
        event=OrderEvent.APPROVE,
        from_status=order.status,
        to_status=OrderStatus.APPROVED,
        commit_ledger=order.ledger_committed_at is None,
        stamp_approval=True,
        notification=NotificationType.ORDER_APPROVED,
    )
