"""
Procurement Orders - Concurrency Tests

Concurrent events on one order, each through its own session.
"""

import asyncio
from decimal import Decimal

import pytest

from app.models.order import OrderStatus
from app.services.budget_ledger import BudgetLedgerService
from app.services.order_workflow import OrderEvent
from app.utils.error_handling import IllegalTransitionException
from tests.fixtures.orders import line


async def run_in_own_session(session_factory, make_service, order_id, event, actor):
    async with session_factory() as session:
        service = make_service(session=session)
        return await service.transition(order_id, event, actor)


@pytest.mark.asyncio
async def test_concurrent_approvals_commit_once(order_service, make_service, session_factory, staff, products):
    """Two approvers racing on one order: one wins, the ledger sees one commit."""
    order = await order_service.create_order(staff.requester, [line(products.workstation)])

    results = await asyncio.gather(
        run_in_own_session(session_factory, make_service, order.id, OrderEvent.APPROVE, staff.procurement_officer),
        run_in_own_session(session_factory, make_service, order.id, OrderEvent.APPROVE, staff.executive),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 1
    assert len(failed) == 1
    assert isinstance(failed[0], IllegalTransitionException)
    assert succeeded[0].status == OrderStatus.APPROVED

    async with session_factory() as session:
        allocation = await BudgetLedgerService(session).get_allocation(
            staff.tenant_id, staff.cost_center_id, 2026
        )
        assert allocation.spent_amount == Decimal("25000.00")


@pytest.mark.asyncio
async def test_approve_racing_cancel(order_service, make_service, session_factory, staff, products):
    """Approve and cancel race; the loser sees the winner's terminal or committed state."""
    order = await order_service.create_order(staff.requester, [line(products.workstation)])

    results = await asyncio.gather(
        run_in_own_session(session_factory, make_service, order.id, OrderEvent.APPROVE, staff.procurement_officer),
        run_in_own_session(session_factory, make_service, order.id, OrderEvent.CANCEL, staff.requester),
        return_exceptions=True,
    )

    assert sum(isinstance(r, IllegalTransitionException) for r in results) == 1
    final = next(r for r in results if not isinstance(r, Exception))

    async with session_factory() as session:
        allocation = await BudgetLedgerService(session).get_allocation(
            staff.tenant_id, staff.cost_center_id, 2026
        )
    if final.status == OrderStatus.APPROVED:
        assert allocation.spent_amount == Decimal("25000.00")
    else:
        assert final.status == OrderStatus.CANCELLED
        assert allocation is None
