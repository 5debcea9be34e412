"""
Procurement Orders - Notification Service

Best-effort in-app notifications for order events.

Notices are dispatched only after the order transaction committed. A failing
sink is logged and never affects the order.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification, NotificationType, NotificationPriority
from app.models.order import Order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderNotice:
    notification_type: NotificationType
    recipient_ids: List[uuid.UUID]
    tenant_id: uuid.UUID
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    async def send(self, notice: OrderNotice) -> None:
        ...


# Title, message template, priority per notice kind
TEMPLATES: Dict[NotificationType, tuple] = {
    NotificationType.APPROVAL_REQUIRED: (
        "Approval Required",
        "Order {order_number} for {grand_total} needs your approval",
        NotificationPriority.HIGH,
    ),
    NotificationType.ORDER_APPROVED: (
        "Order Approved",
        "Your order {order_number} has been approved",
        NotificationPriority.NORMAL,
    ),
    NotificationType.ORDER_DECLINED: (
        "Order Declined",
        "Your order {order_number} was declined. Reason: {reason}",
        NotificationPriority.HIGH,
    ),
    NotificationType.ORDER_CANCELLED: (
        "Order Cancelled",
        "Order {order_number} has been cancelled",
        NotificationPriority.NORMAL,
    ),
    NotificationType.ORDER_RETURNED: (
        "Order Returned",
        "Order {order_number} was returned. Reason: {reason}",
        NotificationPriority.HIGH,
    ),
    NotificationType.EXECUTIVE_REVIEW_REQUIRED: (
        "Executive Review Required",
        "Order {order_number} for {grand_total} is on hold pending executive sign-off",
        NotificationPriority.URGENT,
    ),
    NotificationType.ORDER_DELIVERED: (
        "Order Delivered",
        "Your order {order_number} has been delivered",
        NotificationPriority.NORMAL,
    ),
    NotificationType.INSTALLMENT_RECEIVED: (
        "Installment Received",
        "Installment {received} of {count} received for order {order_number}",
        NotificationPriority.LOW,
    ),
}


def build_order_notice(
    notification_type: NotificationType,
    order: Order,
    recipient_ids: List[Optional[uuid.UUID]],
    **extra: Any,
) -> Optional[OrderNotice]:
    """Render a notice for `order`; None when nobody is left to notify."""
    recipients = [r for r in dict.fromkeys(recipient_ids) if r is not None]
    if not recipients:
        return None

    title, template, priority = TEMPLATES[notification_type]
    context = {
        "order_number": order.order_number,
        "grand_total": order.grand_total,
        "reason": order.rejection_reason or "not given",
        "received": order.installments_received,
        "count": order.installment_count,
    }
    context.update(extra)

    return OrderNotice(
        notification_type=notification_type,
        recipient_ids=recipients,
        tenant_id=order.tenant_id,
        title=title,
        message=template.format(**context),
        priority=priority,
        data={
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": order.status.value,
            "grand_total": str(order.grand_total),
        },
    )


class DatabaseNotificationSink:
    """Persists one Notification row per recipient in its own session."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def send(self, notice: OrderNotice) -> None:
        async with self.session_factory() as session:
            for user_id in notice.recipient_ids:
                session.add(Notification(
                    user_id=user_id,
                    tenant_id=notice.tenant_id,
                    notification_type=notice.notification_type,
                    priority=notice.priority,
                    title=notice.title,
                    message=notice.message,
                    data=notice.data,
                ))
            await session.commit()


class NotificationDispatcher:
    """Fire-and-forget delivery of committed order events."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    async def dispatch(self, notices: List[Optional[OrderNotice]]) -> None:
        for notice in notices:
            if notice is None:
                continue
            try:
                await self.sink.send(notice)
            except Exception as e:
                logger.warning(
                    f"Notification {notice.notification_type.value} for order "
                    f"{notice.data.get('order_number')} failed: {e}",
                    exc_info=True,
                )


class NotificationService:
    """Reading and acknowledging persisted notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_notifications(
        self,
        user_id: uuid.UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        query = query.order_by(Notification.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def mark_all_as_read(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .values(is_read=True, read_at=datetime.utcnow())
        )
        await self.db.commit()
        return result.rowcount
