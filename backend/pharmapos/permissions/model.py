# Overview: Immutable permission table built once at process start.

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .categories import Role, Resource, Action
from .definitions import DEFAULT_ROLE_PERMISSIONS, ROLE_DESCRIPTIONS


@dataclass(frozen=True)
class Conditions:
    branch_scoped: bool = False
    own_data_only: bool = False
    # Advisory ceiling (currency units) for the caller to enforce, e.g. refunds
    numeric_limit: int | None = None


@dataclass(frozen=True)
class Permission:
    resource: str
    actions: frozenset[str]
    conditions: Conditions = field(default_factory=Conditions)

    def allows(self, action: str) -> bool:
        return action in self.actions


class PermissionTableError(ValueError):
    """Raised when a role table definition references unknown roles/resources/actions."""


class RolePermissionTable:
    """
    Read-only role → resource → Permission mapping.

    Built once (usually by build_default_permission_table) and handed to
    the evaluator by reference. Nothing mutates it after construction.
    """

    def __init__(
        self,
        grants: Mapping[str, Mapping[str, Permission]],
        descriptions: Mapping[str, str] | None = None,
    ):
        self._grants = MappingProxyType(
            {role: MappingProxyType(dict(perms)) for role, perms in grants.items()}
        )
        self._descriptions = MappingProxyType(dict(descriptions or {}))

    @classmethod
    def from_definitions(
        cls,
        definitions: Mapping[str, list[tuple]],
        descriptions: Mapping[str, str] | None = None,
    ) -> "RolePermissionTable":
        grants: dict[str, dict[str, Permission]] = {}
        for role, entries in definitions.items():
            if role not in Role.ALL:
                raise PermissionTableError(f"unknown role: {role}")
            perms: dict[str, Permission] = {}
            for resource, actions, conditions in entries:
                if resource not in Resource.ALL:
                    raise PermissionTableError(f"unknown resource: {resource}")
                unknown = [a for a in actions if a not in Action.ALL]
                if unknown:
                    raise PermissionTableError(f"unknown actions for {resource}: {unknown}")
                if resource in perms:
                    raise PermissionTableError(f"duplicate grant for {role}/{resource}")
                perms[resource] = Permission(
                    resource=resource,
                    actions=frozenset(actions),
                    conditions=Conditions(**conditions),
                )
            grants[role] = perms
        return cls(grants, descriptions)

    def roles(self) -> tuple[str, ...]:
        return tuple(self._grants.keys())

    def permission_for(self, role: str, resource: str) -> Permission | None:
        perms = self._grants.get(role)
        if perms is None:
            return None
        return perms.get(resource)

    def permissions_for(self, role: str) -> tuple[Permission, ...]:
        perms = self._grants.get(role)
        if perms is None:
            return ()
        return tuple(perms.values())

    def description(self, role: str) -> str | None:
        return self._descriptions.get(role)


def build_default_permission_table() -> RolePermissionTable:
    """Build the shipped role table. Call once at startup."""
    return RolePermissionTable.from_definitions(DEFAULT_ROLE_PERMISSIONS, ROLE_DESCRIPTIONS)
