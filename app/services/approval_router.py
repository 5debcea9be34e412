"""
Procurement Orders - Approval Router

Tiered approval routing by order total.

Default threshold table (per-tenant overrides live in approval_policies):
- total < 5 000                  auto-approved
- 5 000 <= total < 20 000        level 1, supervisor
- 20 000 <= total < 50 000       level 2, procurement officer
- total >= 50 000                level 3, executive admin

Comparisons are exact Decimal `<`, so a total equal to a boundary goes to the
higher tier. A separate executive-review threshold holds high-value orders at
IN_PROCESS until an executive signs off.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.approval import ApprovalRequest, ApprovalStatus
from app.models.order import Order
from app.models.policy import ApprovalPolicy
from app.models.user import Role, User
from app.services.catalog import RoleDirectory
from app.utils.permissions import Authority, has_authority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdPolicy:
    """Threshold table used to route one tenant's orders."""

    auto_approve_threshold: Decimal
    supervisor_threshold: Decimal
    procurement_threshold: Decimal
    executive_review_threshold: Decimal

    @classmethod
    def from_settings(cls) -> "ThresholdPolicy":
        return cls(
            auto_approve_threshold=settings.auto_approve_threshold,
            supervisor_threshold=settings.supervisor_threshold,
            procurement_threshold=settings.procurement_threshold,
            executive_review_threshold=settings.executive_review_threshold,
        )

    @classmethod
    def from_model(cls, policy: ApprovalPolicy) -> "ThresholdPolicy":
        review = policy.executive_review_threshold
        return cls(
            auto_approve_threshold=policy.auto_approve_threshold,
            supervisor_threshold=policy.supervisor_threshold,
            procurement_threshold=policy.procurement_threshold,
            executive_review_threshold=settings.executive_review_threshold if review is None else review,
        )

    def requires_executive_review(self, amount: Decimal) -> bool:
        """Non-positive review threshold disables the checkpoint."""
        if self.executive_review_threshold <= 0:
            return False
        return amount >= self.executive_review_threshold


@dataclass(frozen=True)
class RoutingDecision:
    auto_approved: bool
    level: int = 0
    required_role: Optional[Role] = None
    approver_id: Optional[uuid.UUID] = None


class ApprovalRouter:
    """Pure tier selection."""

    @staticmethod
    def determine_tier(amount: Decimal, policy: ThresholdPolicy) -> RoutingDecision:
        if amount < policy.auto_approve_threshold:
            return RoutingDecision(auto_approved=True)
        if amount < policy.supervisor_threshold:
            return RoutingDecision(auto_approved=False, level=1, required_role=Role.SUPERVISOR)
        if amount < policy.procurement_threshold:
            return RoutingDecision(auto_approved=False, level=2, required_role=Role.PROCUREMENT_OFFICER)
        return RoutingDecision(auto_approved=False, level=3, required_role=Role.EXECUTIVE_ADMIN)


class ApprovalRouterService:
    """Approval requests for routed orders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # POLICY
    # =========================================================================

    async def get_policy(self, tenant_id: uuid.UUID) -> ThresholdPolicy:
        """Tenant override if one exists, otherwise the configured defaults."""
        result = await self.db.execute(
            select(ApprovalPolicy).where(ApprovalPolicy.tenant_id == tenant_id)
        )
        policy = result.scalar_one_or_none()
        if policy is None:
            return ThresholdPolicy.from_settings()
        return ThresholdPolicy.from_model(policy)

    async def set_policy(
        self,
        tenant_id: uuid.UUID,
        auto_approve_threshold: Decimal,
        supervisor_threshold: Decimal,
        procurement_threshold: Decimal,
        executive_review_threshold: Optional[Decimal] = None,
    ) -> ApprovalPolicy:
        """Create or replace a tenant's threshold table. Caller commits."""
        result = await self.db.execute(
            select(ApprovalPolicy).where(ApprovalPolicy.tenant_id == tenant_id)
        )
        policy = result.scalar_one_or_none()
        if policy is None:
            policy = ApprovalPolicy(tenant_id=tenant_id)
            self.db.add(policy)
        policy.auto_approve_threshold = auto_approve_threshold
        policy.supervisor_threshold = supervisor_threshold
        policy.procurement_threshold = procurement_threshold
        policy.executive_review_threshold = executive_review_threshold
        await self.db.flush()
        return policy

    # =========================================================================
    # ROUTING
    # =========================================================================

    async def route_order(
        self,
        order: Order,
        directory: RoleDirectory,
        policy: Optional[ThresholdPolicy] = None,
    ) -> RoutingDecision:
        """
        Route an order by its grand total.

        For a manual tier, exactly one ApprovalRequest is added to the session.
        The approver is the first roster user holding the tier role; with no
        such user the request is created unassigned. Caller commits.
        """
        policy = policy or await self.get_policy(order.tenant_id)
        decision = ApprovalRouter.determine_tier(order.grand_total, policy)

        if decision.auto_approved:
            logger.info(f"Order {order.order_number} auto-approved at {order.grand_total}")
            return decision

        candidates = await directory.users_with_role(order.tenant_id, decision.required_role)
        approver_id = candidates[0].id if candidates else None
        if approver_id is None:
            logger.warning(
                f"Order {order.order_number}: no {decision.required_role.value} in tenant "
                f"{order.tenant_id}; approval request left unassigned"
            )

        request = ApprovalRequest(
            tenant_id=order.tenant_id,
            order_id=order.id,
            requester_id=order.requester_id,
            approver_id=approver_id,
            level=decision.level,
            required_role=decision.required_role,
            amount=order.grand_total,
            status=ApprovalStatus.PENDING,
        )
        self.db.add(request)

        logger.info(
            f"Order {order.order_number} routed to level {decision.level} "
            f"({decision.required_role.value}), approver={approver_id}"
        )
        return RoutingDecision(
            auto_approved=False,
            level=decision.level,
            required_role=decision.required_role,
            approver_id=approver_id,
        )

    async def reroute_on_reprice(
        self,
        order: Order,
        request: ApprovalRequest,
        directory: RoleDirectory,
        changed_by: uuid.UUID,
        changed_at: datetime,
    ) -> Optional[RoutingDecision]:
        """
        Keep an active request in step with a repriced order.

        A total that now falls in a higher tier supersedes the request and
        routes a new one at that tier; the new decision is returned. Otherwise
        the request keeps its approver and only its amount follows the order.
        Levels never go down. Caller commits.
        """
        policy = await self.get_policy(order.tenant_id)
        decision = ApprovalRouter.determine_tier(order.grand_total, policy)
        if decision.auto_approved or decision.level <= request.level:
            request.amount = order.grand_total
            return None

        self.resolve_request(
            request,
            ApprovalStatus.SUPERSEDED,
            changed_by,
            changed_at,
            f"Total changed to {order.grand_total}; level {decision.level} approval required",
        )
        logger.info(
            f"Order {order.order_number}: level {request.level} request superseded, "
            f"total {order.grand_total} needs level {decision.level}"
        )
        await self.db.flush()
        return await self.route_order(order, directory, policy)

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def get_active_request(self, order_id: uuid.UUID) -> Optional[ApprovalRequest]:
        result = await self.db.execute(
            select(ApprovalRequest).where(
                ApprovalRequest.order_id == order_id,
                ApprovalRequest.status == ApprovalStatus.PENDING,
            )
        )
        return result.scalar_one_or_none()

    async def get_requests_for_order(self, order_id: uuid.UUID) -> List[ApprovalRequest]:
        result = await self.db.execute(
            select(ApprovalRequest)
            .where(ApprovalRequest.order_id == order_id)
            .order_by(ApprovalRequest.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    def resolve_request(
        request: ApprovalRequest,
        status: ApprovalStatus,
        resolved_by: uuid.UUID,
        resolved_at: datetime,
        comments: Optional[str] = None,
    ) -> None:
        """Close an active request. Resolved requests never change again."""
        if not request.is_active:
            return
        request.status = status
        request.resolved_by_id = resolved_by
        request.resolved_at = resolved_at
        if comments:
            request.comments = comments

    async def get_pending_approvals_for(self, user: User) -> List[ApprovalRequest]:
        """
        PENDING requests assigned to `user`.

        Holders of the approval override also see unassigned requests of
        their tenant.
        """
        assigned = ApprovalRequest.approver_id == user.id
        if has_authority(user.role, Authority.APPROVAL_OVERRIDE):
            unassigned = ApprovalRequest.approver_id.is_(None)
            if user.role != Role.SUPER_ADMIN:
                unassigned = and_(unassigned, ApprovalRequest.tenant_id == user.tenant_id)
            condition = or_(assigned, unassigned)
        else:
            condition = assigned

        result = await self.db.execute(
            select(ApprovalRequest)
            .where(ApprovalRequest.status == ApprovalStatus.PENDING, condition)
            .order_by(ApprovalRequest.created_at)
        )
        return list(result.scalars().all())
