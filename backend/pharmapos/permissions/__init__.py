# Overview: Permission system package.
# Re-exports the role table, evaluator and constants.

from .categories import Role, Resource, Action
from .definitions import DEFAULT_ROLE_PERMISSIONS, ROLE_DESCRIPTIONS
from .model import (
    Conditions,
    Permission,
    PermissionTableError,
    RolePermissionTable,
    build_default_permission_table,
)
from .evaluator import PermissionDecision, PermissionEvaluator, evaluate

__all__ = [
    "Role",
    "Resource",
    "Action",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLE_DESCRIPTIONS",
    "Conditions",
    "Permission",
    "PermissionTableError",
    "RolePermissionTable",
    "build_default_permission_table",
    "PermissionDecision",
    "PermissionEvaluator",
    "evaluate",
]
