"""
Procurement Orders - Order Service

Order aggregate operations:
- Order creation (pricing, installment schedule, routing, ledger commit)
- Lifecycle transitions through the state machine
- Installment payment recording
- Line item edits before approval
- Role-scoped reads

Every write for one order runs under that order's lock and inside a single
database transaction. The ledger commit shares the transaction with the state
change; notifications go out only after the commit.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.models.approval import ApprovalRequest
from app.models.notification import NotificationType
from app.models.order import (
    EDITABLE_STATUSES,
    Order,
    OrderItem,
    OrderPriority,
    OrderStatus,
    PaymentType,
)
from app.models.user import Role, User
from app.services.approval_router import ApprovalRouterService
from app.services.budget_ledger import BudgetLedgerService
from app.services.catalog import ProductCatalog, RoleDirectory, SqlProductCatalog, SqlRoleDirectory
from app.services.installment_plan import InstallmentPlanCalculator
from app.services.notification_service import (
    NotificationDispatcher,
    OrderNotice,
    build_order_notice,
)
from app.services.order_locks import OrderLockRegistry, order_locks
from app.services.order_numbers import generate_order_number
from app.services.order_workflow import (
    OrderEvent,
    TransitionPayload,
    TransitionPlan,
    evaluate_transition,
    installment_clearance_plan,
)
from app.services.pricing import PricingCalculator
from app.utils.error_handling import (
    AllInstallmentsReceivedException,
    ConflictException,
    ErrorCode,
    ForbiddenException,
    IllegalTransitionException,
    InvalidOrderException,
    LedgerCommitException,
    NotFoundException,
    NotInstallmentOrderException,
    OrderFinalizedException,
    OrderNotFoundException,
    WrongStateException,
)
from app.utils.permissions import TENANT_WIDE_VIEWERS, Actor, Authority, has_authority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineItemInput:
    product_id: uuid.UUID
    quantity: int
    notes: Optional[str] = None


@dataclass(frozen=True)
class InstallmentConfig:
    debit_day: Optional[int] = None


class OrderService:
    """Service for order lifecycle operations."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationDispatcher,
        catalog: Optional[ProductCatalog] = None,
        directory: Optional[RoleDirectory] = None,
        ledger: Optional[BudgetLedgerService] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        locks: Optional[OrderLockRegistry] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.catalog = catalog or SqlProductCatalog(db)
        self.directory = directory or SqlRoleDirectory(db)
        self.ledger = ledger or BudgetLedgerService(db)
        self.router = ApprovalRouterService(db)
        self.clock = clock
        self.locks = locks or order_locks

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create_order(
        self,
        requester: User,
        items: Sequence[LineItemInput],
        payment_type: PaymentType = PaymentType.IMMEDIATE,
        cost_center_id: Optional[uuid.UUID] = None,
        installment_config: Optional[InstallmentConfig] = None,
        priority: OrderPriority = OrderPriority.MEDIUM,
        shipping_address: Optional[str] = None,
        delivery_notes: Optional[str] = None,
        shipping_cost: Optional[Decimal] = None,
    ) -> Order:
        """
        Price, number and route a new order.

        IMMEDIATE orders below the auto-approve threshold are APPROVED at once
        and committed to the ledger; larger ones wait in PENDING with one
        ApprovalRequest. INSTALLMENT orders always start PENDING and clear on
        their final installment.

        Raises:
            InvalidOrderException: no items, bad quantity, unknown or unavailable product
            InvalidPaymentPlanException: no installment month remains this year
            ConflictException: no unique order number could be drawn
            LedgerCommitException: auto-approval could not be committed
        """
        actor = Actor.from_user(requester)
        if actor.tenant_id is None:
            raise InvalidOrderException("Requester does not belong to a tenant", field="tenant_id")
        if not items:
            raise InvalidOrderException("An order needs at least one item", field="items")

        for index, line in enumerate(items):
            if line.quantity is None or line.quantity <= 0:
                raise InvalidOrderException(
                    "Quantity must be greater than zero",
                    field=f"items.{index}.quantity",
                    details={"product_id": str(line.product_id), "quantity": line.quantity},
                )

        catalog = await self.catalog.lookup(line.product_id for line in items)
        for index, line in enumerate(items):
            entry = catalog.get(line.product_id)
            if entry is None:
                raise InvalidOrderException(
                    f"Product {line.product_id} does not exist",
                    field=f"items.{index}.product_id",
                )
            if not entry.is_available:
                raise InvalidOrderException(
                    f"Product '{entry.name}' is not available",
                    field=f"items.{index}.product_id",
                    details={"product_id": str(line.product_id)},
                )

        now = self.clock()
        order = Order(
            id=uuid.uuid4(),
            tenant_id=actor.tenant_id,
            order_number=await self._draw_order_number(now, actor.tenant_id),
            requester_id=actor.id,
            cost_center_id=cost_center_id or actor.cost_center_id,
            priority=priority,
            shipping_address=shipping_address,
            delivery_notes=delivery_notes,
            status=OrderStatus.PENDING,
            payment_type=payment_type,
            installments_received=0,
            is_finalized=False,
            executive_review_required=False,
            shipping_cost=settings.default_shipping_cost if shipping_cost is None else shipping_cost,
        )
        for number, line in enumerate(items, start=1):
            entry = catalog[line.product_id]
            order.items.append(OrderItem(
                id=uuid.uuid4(),
                line_number=number,
                product_id=line.product_id,
                product_name=entry.name,
                quantity=line.quantity,
                unit_price=entry.unit_price,
                line_subtotal=PricingCalculator.line_subtotal(entry.unit_price, line.quantity),
                notes=line.notes,
            ))
        PricingCalculator.reprice_order(order)

        if payment_type == PaymentType.INSTALLMENT:
            config = installment_config or InstallmentConfig()
            schedule = InstallmentPlanCalculator.build_schedule(
                order.grand_total, now.date(), debit_day=config.debit_day
            )
            InstallmentPlanCalculator.apply_schedule(order, schedule)

        self.db.add(order)
        notices: List[Optional[OrderNotice]] = []
        try:
            if payment_type == PaymentType.INSTALLMENT:
                logger.info(
                    f"Order {order.order_number} on {order.installment_count} installments "
                    f"of {order.installment_amount}; awaiting payments"
                )
            else:
                decision = await self.router.route_order(order, self.directory)
                if decision.auto_approved:
                    order.status = OrderStatus.APPROVED
                    order.approved_at = now
                    await self.db.flush()
                    await self._commit_ledger(order, now)
                else:
                    notices.append(build_order_notice(
                        NotificationType.APPROVAL_REQUIRED, order, [decision.approver_id]
                    ))
            await self.db.commit()
        except LedgerCommitException:
            await self.db.rollback()
            logger.error(f"Order {order.order_number} not created: ledger commit failed")
            raise

        logger.info(
            f"Order {order.order_number} created by {actor.id}: {len(order.items)} items, "
            f"total {order.grand_total}, status {order.status.value}"
        )
        await self.notifier.dispatch(notices)
        return order

    async def _draw_order_number(self, now: datetime, tenant_id: uuid.UUID) -> str:
        for attempt in range(1, settings.order_number_max_attempts + 1):
            candidate = generate_order_number(now, tenant_id)
            result = await self.db.execute(select(Order.id).where(Order.order_number == candidate))
            if result.scalar_one_or_none() is None:
                return candidate
            logger.warning(f"Order number collision on {candidate} (attempt {attempt})")
        raise ConflictException(
            "Could not allocate a unique order number",
            resource_type="Order",
            code=ErrorCode.ORDER_NUMBER_EXHAUSTED,
            details={"attempts": settings.order_number_max_attempts},
        )

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def transition(
        self,
        order_id: uuid.UUID,
        event: OrderEvent,
        actor: User,
        payload: Optional[TransitionPayload] = None,
    ) -> Order:
        """
        Apply a lifecycle event to an order.

        Raises:
            OrderNotFoundException, IllegalTransitionException, ForbiddenException,
            ValidationException (missing reason), LedgerCommitException,
            ConflictException (version conflict after retries)
        """
        event = OrderEvent(event)
        snapshot = Actor.from_user(actor)
        return await self._locked_write(
            order_id,
            lambda: self._apply_transition(order_id, event, snapshot, payload),
        )

    async def _apply_transition(
        self,
        order_id: uuid.UUID,
        event: OrderEvent,
        actor: Actor,
        payload: Optional[TransitionPayload],
    ) -> Tuple[Order, List[Optional[OrderNotice]]]:
        order = await self._load_for_update(order_id)
        request = await self.router.get_active_request(order.id)
        policy = await self.router.get_policy(order.tenant_id)

        plan = evaluate_transition(order, event, actor, policy, payload, request)
        if not plan.ok:
            logger.info(
                f"Order {order.order_number}: {event.value} by {actor.id} refused "
                f"({plan.error.value}: {plan.message})"
            )
            plan.raise_if_rejected()
        if plan.no_op:
            logger.debug(f"Order {order.order_number}: {event.value} is a no-op in {order.status.value}")
            return order, []

        notices = await self._apply_plan(order, plan, actor, request)
        logger.info(
            f"Order {order.order_number}: {plan.from_status.value} -> {plan.to_status.value} "
            f"via {event.value} by {actor.id}"
        )
        return order, notices

    async def _apply_plan(
        self,
        order: Order,
        plan: TransitionPlan,
        actor: Actor,
        request: Optional[ApprovalRequest],
    ) -> List[Optional[OrderNotice]]:
        """Write the plan's status and effects, then commit. Returns notices to send."""
        now = self.clock()

        if plan.resolve_request is not None and request is not None:
            comments = plan.rejection_reason or f"Order {plan.to_status.value} via {plan.event.value}"
            ApprovalRouterService.resolve_request(request, plan.resolve_request, actor.id, now, comments)

        order.status = plan.to_status
        if plan.review_hold is not None:
            order.executive_review_required = plan.review_hold
        if plan.rejection_reason:
            order.rejection_reason = plan.rejection_reason
        if plan.stamp_approval:
            order.approved_by_id = actor.id
            order.approved_at = now
        if plan.stamp_delivery:
            order.actual_delivery_at = now
        if plan.finalize:
            order.is_finalized = True

        notices = await self._notices_for(plan, order)

        try:
            await self.db.flush()
            if plan.commit_ledger and order.ledger_committed_at is None:
                await self._commit_ledger(order, now)
            await self.db.commit()
        except LedgerCommitException:
            await self.db.rollback()
            logger.error(
                f"Order {order.order_number}: {plan.event.value} rolled back, ledger commit failed"
            )
            raise
        return notices

    async def _commit_ledger(self, order: Order, now: datetime) -> None:
        await self.ledger.commit(order.tenant_id, order.cost_center_id, order.grand_total, now)
        order.ledger_committed_at = now
        await self.db.flush()

    async def _notices_for(self, plan: TransitionPlan, order: Order) -> List[Optional[OrderNotice]]:
        kind = plan.notification
        if kind is None:
            return []
        if kind == NotificationType.EXECUTIVE_REVIEW_REQUIRED:
            executives = await self.directory.users_with_role(order.tenant_id, Role.EXECUTIVE_ADMIN)
            return [build_order_notice(kind, order, [user.id for user in executives])]
        return [build_order_notice(kind, order, [order.requester_id])]

    async def _locked_write(self, order_id: uuid.UUID, operation: Callable) -> Order:
        """
        Run `operation` under the order lock, retrying on version conflicts.

        `operation` returns (order, notices); notices are dispatched once the
        lock is released.
        """
        async with self.locks.hold(order_id):
            order, notices = await self._with_retries(order_id, operation)
        await self.notifier.dispatch(notices)
        return order

    async def _with_retries(self, order_id: uuid.UUID, operation: Callable) -> Tuple[Order, list]:
        for attempt in range(1, settings.transition_max_retries + 1):
            try:
                return await operation()
            except StaleDataError:
                await self.db.rollback()
                logger.warning(f"Version conflict on order {order_id} (attempt {attempt})")
        raise ConflictException(
            "Order was modified concurrently; please retry",
            resource_type="Order",
            code=ErrorCode.VERSION_CONFLICT,
            details={"order_id": str(order_id)},
        )

    async def _load_for_update(self, order_id: uuid.UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    # =========================================================================
    # INSTALLMENTS
    # =========================================================================

    async def record_installment_payment(self, order_id: uuid.UUID, actor: User) -> Order:
        """
        Count one received installment.

        The final installment clears the order: PENDING -> APPROVED with a
        ledger commit in the same transaction.
        """
        snapshot = Actor.from_user(actor)
        return await self._locked_write(
            order_id,
            lambda: self._apply_installment(order_id, snapshot),
        )

    async def _apply_installment(
        self,
        order_id: uuid.UUID,
        actor: Actor,
    ) -> Tuple[Order, List[Optional[OrderNotice]]]:
        order = await self._load_for_update(order_id)
        self._check_tenant(order, actor)
        if not has_authority(actor.role, Authority.OPERATIONS):
            raise ForbiddenException("Only operations may record installment payments")

        if order.payment_type != PaymentType.INSTALLMENT:
            raise NotInstallmentOrderException(order.order_number)
        if order.status != OrderStatus.PENDING:
            raise WrongStateException(order.order_number, order.status.value, OrderStatus.PENDING.value)
        if order.installments_received >= order.installment_count:
            raise AllInstallmentsReceivedException(order.order_number, order.installment_count)

        order.installments_received += 1
        logger.info(
            f"Order {order.order_number}: installment {order.installments_received}/"
            f"{order.installment_count} received, recorded by {actor.id}"
        )

        if order.installments_received == order.installment_count:
            notices = await self._apply_plan(order, installment_clearance_plan(order), actor, None)
            logger.info(f"Order {order.order_number}: final installment in, order approved")
        else:
            notices = [build_order_notice(NotificationType.INSTALLMENT_RECEIVED, order, [order.requester_id])]
            await self.db.commit()

        return order, notices

    # =========================================================================
    # LINE ITEMS
    # =========================================================================

    async def edit_line_item(
        self,
        order_id: uuid.UUID,
        item_id: uuid.UUID,
        quantity: int,
        actor: User,
    ) -> Order:
        """Change a line's quantity and reprice the order."""
        if quantity is None or quantity <= 0:
            raise InvalidOrderException("Quantity must be greater than zero", field="quantity")
        snapshot = Actor.from_user(actor)
        return await self._locked_write(
            order_id,
            lambda: self._apply_item_change(order_id, item_id, snapshot, quantity),
        )

    async def remove_line_item(self, order_id: uuid.UUID, item_id: uuid.UUID, actor: User) -> Order:
        """Drop a line and reprice the order. The last line cannot be removed."""
        snapshot = Actor.from_user(actor)
        return await self._locked_write(
            order_id,
            lambda: self._apply_item_change(order_id, item_id, snapshot, None),
        )

    async def _apply_item_change(
        self,
        order_id: uuid.UUID,
        item_id: uuid.UUID,
        actor: Actor,
        quantity: Optional[int],
    ) -> Tuple[Order, list]:
        order = await self._load_for_update(order_id)
        self._check_owner_or_admin(order, actor)
        if order.is_finalized or order.status not in EDITABLE_STATUSES:
            raise OrderFinalizedException(order.order_number, order.status.value)

        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundException("OrderItem", item_id)

        if quantity is None:
            if len(order.items) == 1:
                raise InvalidOrderException("An order needs at least one item", field="items")
            order.items.remove(item)
            logger.info(f"Order {order.order_number}: line {item.line_number} removed by {actor.id}")
        else:
            item.quantity = quantity
            logger.info(
                f"Order {order.order_number}: line {item.line_number} quantity -> {quantity} by {actor.id}"
            )

        PricingCalculator.reprice_order(order)
        if order.payment_type == PaymentType.INSTALLMENT:
            InstallmentPlanCalculator.recompute_amount(order)

        notices: List[Optional[OrderNotice]] = []
        request = await self.router.get_active_request(order.id)
        if request is not None:
            decision = await self.router.reroute_on_reprice(
                order, request, self.directory, actor.id, self.clock()
            )
            if decision is not None:
                notices.append(build_order_notice(
                    NotificationType.APPROVAL_REQUIRED, order, [decision.approver_id]
                ))

        await self.db.commit()
        return order, notices

    async def mark_final(self, order_id: uuid.UUID, actor: User) -> Order:
        """Lock the order's items without changing its status."""
        snapshot = Actor.from_user(actor)
        return await self._locked_write(order_id, lambda: self._apply_mark_final(order_id, snapshot))

    async def _apply_mark_final(self, order_id: uuid.UUID, actor: Actor) -> Tuple[Order, list]:
        order = await self._load_for_update(order_id)
        self._check_owner_or_admin(order, actor)
        if order.is_terminal:
            raise IllegalTransitionException(order.status.value, "mark_final")
        if not order.is_finalized:
            order.is_finalized = True
            await self.db.commit()
            logger.info(f"Order {order.order_number} marked final by {actor.id}")
        return order, []

    # =========================================================================
    # READS
    # =========================================================================

    async def get_order(self, order_id: uuid.UUID, actor: User) -> Order:
        """
        Fetch one order the actor may see.

        Cross-tenant reads are refused except for the super admin; requesters
        only see their own orders.
        """
        result = await self.db.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundException(order_id)

        snapshot = Actor.from_user(actor)
        self._check_tenant(order, snapshot)
        if snapshot.role == Role.REQUESTER and order.requester_id != snapshot.id:
            raise ForbiddenException("You can only view your own orders")
        return order

    async def list_orders_for(
        self,
        actor: User,
        status: Optional[OrderStatus] = None,
        cost_center_id: Optional[uuid.UUID] = None,
    ) -> List[Order]:
        """Orders visible to the actor's role, newest first."""
        query = select(Order)
        role = actor.role

        if role == Role.SUPER_ADMIN:
            pass
        elif role in TENANT_WIDE_VIEWERS:
            query = query.where(Order.tenant_id == actor.tenant_id)
        elif role == Role.SUPERVISOR:
            query = query.where(Order.tenant_id == actor.tenant_id)
            if actor.cost_center_id is not None:
                query = query.where(Order.cost_center_id == actor.cost_center_id)
        else:
            query = query.where(Order.requester_id == actor.id)

        if status is not None:
            query = query.where(Order.status == status)
        if cost_center_id is not None:
            query = query.where(Order.cost_center_id == cost_center_id)

        result = await self.db.execute(query.order_by(Order.created_at.desc(), Order.order_number))
        return list(result.scalars().all())

    async def get_pending_approvals(self, approver: User) -> List[ApprovalRequest]:
        return await self.router.get_pending_approvals_for(approver)

    async def get_approval_requests(self, order_id: uuid.UUID, actor: User) -> List[ApprovalRequest]:
        order = await self.get_order(order_id, actor)
        return await self.router.get_requests_for_order(order.id)

    # =========================================================================
    # ACCESS HELPERS
    # =========================================================================

    @staticmethod
    def _check_tenant(order: Order, actor: Actor) -> None:
        if actor.role != Role.SUPER_ADMIN and actor.tenant_id != order.tenant_id:
            raise ForbiddenException("Order belongs to another tenant")

    @staticmethod
    def _check_owner_or_admin(order: Order, actor: Actor) -> None:
        OrderService._check_tenant(order, actor)
        if actor.id != order.requester_id and not has_authority(actor.role, Authority.CANCEL_ANY):
            raise ForbiddenException("Only the requester or an admin may change this order")
