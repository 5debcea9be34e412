"""
Procurement Orders - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin
from app.models.user import User, Role
from app.models.product import Product
from app.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    OrderPriority,
    PaymentType,
    TERMINAL_STATUSES,
    EDITABLE_STATUSES,
)
from app.models.approval import ApprovalRequest, ApprovalStatus
from app.models.budget import BudgetAllocation
from app.models.policy import ApprovalPolicy
from app.models.notification import Notification, NotificationType, NotificationPriority

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "User",
    "Role",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderPriority",
    "PaymentType",
    "TERMINAL_STATUSES",
    "EDITABLE_STATUSES",
    "ApprovalRequest",
    "ApprovalStatus",
    "BudgetAllocation",
    "ApprovalPolicy",
    "Notification",
    "NotificationType",
    "NotificationPriority",
]
