"""
Shared helpers for the order engine tests.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.product import Product
from app.models.user import Role, User
from app.services.notification_service import OrderNotice
from app.services.order_service import LineItemInput


# Fixed clocks: March leaves 8 installment months (Apr..Nov), February 9
MARCH_10 = datetime(2026, 3, 10, 9, 30, 0)
FEBRUARY_10 = datetime(2026, 2, 10, 9, 30, 0)
NOVEMBER_2 = datetime(2026, 11, 2, 8, 0, 0)


class RecordingSink:
    """Keeps every notice it is handed."""

    def __init__(self):
        self.notices: List[OrderNotice] = []

    async def send(self, notice: OrderNotice) -> None:
        self.notices.append(notice)

    def of_type(self, notification_type) -> List[OrderNotice]:
        return [n for n in self.notices if n.notification_type == notification_type]


class FailingSink:
    async def send(self, notice: OrderNotice) -> None:
        raise ConnectionError("mail relay unreachable")


async def create_user(
    session: AsyncSession,
    role: Role,
    tenant_id: Optional[UUID],
    email: str,
    cost_center_id: Optional[UUID] = None,
) -> User:
    user = User(
        id=uuid4(),
        tenant_id=tenant_id,
        email=email,
        first_name=role.value.replace("_", " ").title(),
        last_name="Tester",
        role=role,
        cost_center_id=cost_center_id,
        is_active=True,
    )
    session.add(user)
    await session.commit()
    return user


def line(product: Product, quantity: int = 1) -> LineItemInput:
    return LineItemInput(product_id=product.id, quantity=quantity)


def as_user(user: User) -> dict:
    return {"X-User-Id": str(user.id)}
