# Overview: Pure allow/deny evaluation against the role permission table.

"""
Permission evaluation

DESIGN PRINCIPLES:
- Fail closed: unknown role, unknown resource or missing action is a deny
- Pure: no I/O, no clock, no globals; the table is injected
- Numeric limits are returned to the caller, never enforced here (the
  evaluator does not see transaction amounts)

CALLER CONTRACT: every mutating entry point evaluates before doing work.
The sale and inventory services trust that their caller already did.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import PermissionDeniedError
from .categories import Role
from .model import RolePermissionTable


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    resource: str
    action: str
    numeric_limit: int | None = None
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


class PermissionEvaluator:
    def __init__(self, table: RolePermissionTable):
        self.table = table

    def evaluate(
        self,
        role: str,
        resource: str,
        action: str,
        user_branch: int | None = None,
        target_branch: int | None = None,
        is_own_data: bool = False,
    ) -> PermissionDecision:
        permission = self.table.permission_for(role, resource)
        if permission is None:
            return PermissionDecision(False, resource, action, reason="resource not granted")

        if not permission.allows(action):
            return PermissionDecision(False, resource, action, reason="action not granted")

        conditions = permission.conditions

        if (
            conditions.branch_scoped
            and role not in Role.BRANCH_EXEMPT
            and user_branch is not None
            and target_branch is not None
            and user_branch != target_branch
        ):
            return PermissionDecision(False, resource, action, reason="cross-branch access")

        if conditions.own_data_only and not is_own_data:
            return PermissionDecision(False, resource, action, reason="own data only")

        return PermissionDecision(True, resource, action, numeric_limit=conditions.numeric_limit)

    def require(
        self,
        role: str,
        resource: str,
        action: str,
        user_branch: int | None = None,
        target_branch: int | None = None,
        is_own_data: bool = False,
    ) -> PermissionDecision:
        """Evaluate and raise PermissionDeniedError on deny."""
        decision = self.evaluate(role, resource, action, user_branch, target_branch, is_own_data)
        if not decision.allowed:
            raise PermissionDeniedError(resource, action)
        return decision

    def accessible_resources(self, role: str) -> list[str]:
        return [p.resource for p in self.table.permissions_for(role) if p.actions]

    def allowed_actions(self, role: str, resource: str) -> list[str]:
        permission = self.table.permission_for(role, resource)
        if permission is None:
            return []
        return sorted(permission.actions)

    def role_description(self, role: str) -> str | None:
        return self.table.description(role)


def evaluate(
    table: RolePermissionTable,
    role: str,
    resource: str,
    action: str,
    user_branch: int | None = None,
    target_branch: int | None = None,
    is_own_data: bool = False,
) -> PermissionDecision:
    """Functional form of PermissionEvaluator.evaluate."""
    return PermissionEvaluator(table).evaluate(
        role, resource, action, user_branch, target_branch, is_own_data
    )
