"""
Procurement Orders - Role Ordering

Roles form a partial order rather than a single ladder: the approval chain and
the operations desk are separate branches that only meet at the super admin.

    SUPER_ADMIN
     |        \\
    EXECUTIVE_ADMIN   OPERATIONS
     |                  |
    PROCUREMENT_OFFICER |
     |                  |
    SUPERVISOR          |
     |                 /
    REQUESTER --------

A user satisfies a required role when their role is the required role or sits
above it in this diagram. Every authorisation decision in the order engine goes
through `role_satisfies`.

Visibility Matrix (list_orders_for):
------------------------------------
| Role                | Sees                               |
|---------------------|------------------------------------|
| super_admin         | every tenant                       |
| executive_admin     | own tenant                         |
| procurement_officer | own tenant                         |
| operations          | own tenant                         |
| supervisor          | own cost center (tenant if unset)  |
| requester           | own orders                         |
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from app.models.user import Role, User


# ===========================================
# PARTIAL ORDER
# ===========================================

# Immediate parents of each role in the diagram above
_PARENTS: Dict[Role, FrozenSet[Role]] = {
    Role.REQUESTER: frozenset({Role.SUPERVISOR, Role.OPERATIONS}),
    Role.SUPERVISOR: frozenset({Role.PROCUREMENT_OFFICER}),
    Role.PROCUREMENT_OFFICER: frozenset({Role.EXECUTIVE_ADMIN}),
    Role.EXECUTIVE_ADMIN: frozenset({Role.SUPER_ADMIN}),
    Role.OPERATIONS: frozenset({Role.SUPER_ADMIN}),
    Role.SUPER_ADMIN: frozenset(),
}


def _ancestors(role: Role) -> FrozenSet[Role]:
    seen = set()
    stack = list(_PARENTS[role])
    while stack:
        parent = stack.pop()
        if parent not in seen:
            seen.add(parent)
            stack.extend(_PARENTS[parent])
    return frozenset(seen)


# role -> every role that satisfies it (itself included)
SATISFIED_BY: Dict[Role, FrozenSet[Role]] = {
    role: _ancestors(role) | {role} for role in Role
}


def role_satisfies(held: Role, required: Role) -> bool:
    """Check if `held` is `required` or above it in the partial order."""
    return held in SATISFIED_BY[required]


# ===========================================
# ROLE REQUIREMENTS USED BY THE ORDER ENGINE
# ===========================================

class Authority(str, Enum):
    """Named authorities the order engine checks for."""
    APPROVAL_OVERRIDE = "approval_override"      # approve/reject any pending order
    CANCEL_ANY = "cancel_any"                    # cancel orders of other users
    OPERATIONS = "operations"                    # fulfilment steps
    EXECUTIVE_SIGN_OFF = "executive_sign_off"    # clear / decline high-value holds
    STATUS_OVERRIDE = "status_override"          # bypass the transition table


AUTHORITY_ROLES: Dict[Authority, Role] = {
    Authority.APPROVAL_OVERRIDE: Role.EXECUTIVE_ADMIN,
    Authority.CANCEL_ANY: Role.EXECUTIVE_ADMIN,
    Authority.OPERATIONS: Role.OPERATIONS,
    Authority.EXECUTIVE_SIGN_OFF: Role.EXECUTIVE_ADMIN,
    Authority.STATUS_OVERRIDE: Role.SUPER_ADMIN,
}


def has_authority(role: Role, authority: Authority) -> bool:
    """Check if a role carries one of the engine's named authorities."""
    return role_satisfies(role, AUTHORITY_ROLES[authority])


TENANT_WIDE_VIEWERS = frozenset({
    Role.EXECUTIVE_ADMIN,
    Role.PROCUREMENT_OFFICER,
    Role.OPERATIONS,
})


# ===========================================
# ACTOR
# ===========================================

@dataclass(frozen=True)
class Actor:
    """Snapshot of the acting user taken when a request enters the engine."""
    id: uuid.UUID
    role: Role
    tenant_id: Optional[uuid.UUID] = None
    cost_center_id: Optional[uuid.UUID] = None

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(
            id=user.id,
            role=user.role,
            tenant_id=user.tenant_id,
            cost_center_id=user.cost_center_id,
        )
