"""
Procurement Orders - Role Ordering Tests
"""

import uuid

import pytest

from app.models.user import Role, User
from app.utils.permissions import Actor, Authority, has_authority, role_satisfies


class TestRoleSatisfies:
    """Partial order of roles."""

    @pytest.mark.parametrize("role", list(Role))
    def test_every_role_satisfies_itself(self, role):
        assert role_satisfies(role, role)

    def test_approval_chain(self):
        assert role_satisfies(Role.EXECUTIVE_ADMIN, Role.PROCUREMENT_OFFICER)
        assert role_satisfies(Role.PROCUREMENT_OFFICER, Role.SUPERVISOR)
        assert not role_satisfies(Role.SUPERVISOR, Role.PROCUREMENT_OFFICER)

    def test_operations_is_a_separate_branch(self):
        """Operations and the approval chain do not satisfy each other."""
        assert not role_satisfies(Role.OPERATIONS, Role.SUPERVISOR)
        assert not role_satisfies(Role.EXECUTIVE_ADMIN, Role.OPERATIONS)
        assert role_satisfies(Role.OPERATIONS, Role.REQUESTER)

    @pytest.mark.parametrize("role", list(Role))
    def test_super_admin_satisfies_everything(self, role):
        assert role_satisfies(Role.SUPER_ADMIN, role)


class TestAuthorities:
    """Named authorities used by the order engine."""

    def test_override_is_super_admin_only(self):
        assert has_authority(Role.SUPER_ADMIN, Authority.STATUS_OVERRIDE)
        assert not has_authority(Role.EXECUTIVE_ADMIN, Authority.STATUS_OVERRIDE)

    def test_fulfilment_needs_operations(self):
        assert has_authority(Role.OPERATIONS, Authority.OPERATIONS)
        assert has_authority(Role.SUPER_ADMIN, Authority.OPERATIONS)
        assert not has_authority(Role.EXECUTIVE_ADMIN, Authority.OPERATIONS)

    def test_approval_override(self):
        assert has_authority(Role.EXECUTIVE_ADMIN, Authority.APPROVAL_OVERRIDE)
        assert not has_authority(Role.PROCUREMENT_OFFICER, Authority.APPROVAL_OVERRIDE)


def test_actor_snapshot_copies_user_fields():
    user = User(
        id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        cost_center_id=uuid.uuid4(),
        email="a@b.test",
        first_name="A",
        last_name="B",
        role=Role.SUPERVISOR,
    )
    actor = Actor.from_user(user)
    assert (actor.id, actor.role, actor.tenant_id, actor.cost_center_id) == (
        user.id, Role.SUPERVISOR, user.tenant_id, user.cost_center_id,
    )
