"""
Procurement Orders - User Model

Users belong to a tenant (a company or a school) and hold exactly one role.

Role hierarchy (see app.utils.permissions for the partial order):
- Requester: places orders (employees, parents, school admins)
- Supervisor: approves mid-size orders (department managers)
- Procurement Officer: approves large orders
- Executive Admin: approves the largest orders, signs off high-value holds
- Operations: fulfils approved orders (purchasing admins)
- Super Admin: platform-wide, may override any non-terminal status
"""

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, String, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class Role(str, Enum):
    """Closed set of role tiers."""
    REQUESTER = "requester"
    SUPERVISOR = "supervisor"
    PROCUREMENT_OFFICER = "procurement_officer"
    EXECUTIVE_ADMIN = "executive_admin"
    OPERATIONS = "operations"
    SUPER_ADMIN = "super_admin"


class User(BaseModel):
    """
    Tenant user as seen by the order engine.

    The super admin is platform staff and has no tenant.
    """

    __tablename__ = "users"

    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    role: Mapped[Role] = mapped_column(
        SQLEnum(Role, native_enum=False, length=32),
        nullable=False,
        default=Role.REQUESTER,
    )

    # Department / cost center the user works in
    cost_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
