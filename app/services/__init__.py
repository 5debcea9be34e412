"""
Procurement Orders - Services Package

Business logic services.
"""

from app.services.approval_router import ApprovalRouter, ApprovalRouterService, ThresholdPolicy
from app.services.budget_ledger import BudgetLedgerService
from app.services.installment_plan import InstallmentPlanCalculator
from app.services.notification_service import NotificationDispatcher, NotificationService
from app.services.order_service import OrderService
from app.services.order_workflow import OrderEvent, evaluate_transition
from app.services.pricing import PricingCalculator

__all__ = [
    "ApprovalRouter",
    "ApprovalRouterService",
    "ThresholdPolicy",
    "BudgetLedgerService",
    "InstallmentPlanCalculator",
    "NotificationDispatcher",
    "NotificationService",
    "OrderService",
    "OrderEvent",
    "evaluate_transition",
    "PricingCalculator",
]
