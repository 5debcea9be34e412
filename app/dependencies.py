"""
Procurement Orders - FastAPI Dependencies

Shared dependencies for:
1. The acting user
2. Notification delivery
3. Service construction
4. Role-based access checks

Authentication happens upstream; the gateway forwards the authenticated user
id in the X-User-Id header.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import async_session_maker, get_async_session
from app.models.user import Role, User
from app.services.budget_ledger import BudgetLedgerService
from app.services.notification_service import (
    DatabaseNotificationSink,
    NotificationDispatcher,
    NotificationSink,
)
from app.services.order_service import OrderService
from app.utils.permissions import role_satisfies


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_async_session),
) -> User:
    """
    Resolve the acting user from the X-User-Id header.

    Raises:
        HTTPException: 401 if the header is missing, malformed or unknown
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def get_notification_sink() -> NotificationSink:
    """In-app notifications, written through their own sessions."""
    return DatabaseNotificationSink(async_session_maker)


def get_order_service(
    db: AsyncSession = Depends(get_async_session),
    sink: NotificationSink = Depends(get_notification_sink),
) -> OrderService:
    return OrderService(db, notifier=NotificationDispatcher(sink))


def get_budget_ledger(db: AsyncSession = Depends(get_async_session)) -> BudgetLedgerService:
    return BudgetLedgerService(db)


def require_role(required: Role):
    """
    Dependency factory requiring the user's role to satisfy `required`.

    Usage:
        @router.post("/", dependencies=[Depends(require_role(Role.EXECUTIVE_ADMIN))])
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if not role_satisfies(current_user.role, required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{required.value}' or higher required",
            )
        return current_user

    return role_checker
