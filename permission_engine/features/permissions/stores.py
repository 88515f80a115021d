"""
Store protocols and in-memory stores.

The resolver only needs the read methods:
    RoleStore.get_role_for_user
    MembershipIndex.get_memberships_for_user
    GroupStore.get_group
    OverrideStore.get_override

Everything else is the administration surface used by PermissionService.
Stores return None (or an empty list) for missing records and raise
StoreUnavailable when the backend itself fails.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

from permission_engine.core.database.base import generate_ulid
from permission_engine.core.errors import RecordNotFound, RoleInUseError
from permission_engine.features.capabilities import CapabilitySet
from permission_engine.features.permissions.entities import (
    IndividualOverride,
    Membership,
    Role,
    UserGroup,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Protocols
# ============================================================================

class RoleStore(Protocol):
    async def get_role(self, role_id: str) -> Optional[Role]:
        ...

    async def get_role_for_user(self, user_id: str) -> Optional[Role]:
        ...

    async def list_roles(self) -> list[Role]:
        ...

    async def create_role(
        self,
        name: str,
        capabilities: CapabilitySet,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> Role:
        ...

    async def update_role(
        self,
        role_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        capabilities: Optional[CapabilitySet] = None,
        is_active: Optional[bool] = None,
    ) -> Role:
        ...

    async def delete_role(self, role_id: str) -> None:
        ...

    async def assign_role_to_user(self, user_id: str, role_id: Optional[str]) -> None:
        ...


class GroupStore(Protocol):
    async def get_group(self, group_id: str) -> Optional[UserGroup]:
        ...

    async def list_groups(self) -> list[UserGroup]:
        ...

    async def create_group(
        self,
        name: str,
        capabilities: CapabilitySet,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> UserGroup:
        ...

    async def update_group(
        self,
        group_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        capabilities: Optional[CapabilitySet] = None,
        is_active: Optional[bool] = None,
    ) -> UserGroup:
        ...

    async def delete_group(self, group_id: str) -> None:
        ...


class MembershipIndex(Protocol):
    async def get_memberships_for_user(self, user_id: str) -> list[Membership]:
        ...

    async def get_group_members(self, group_id: str) -> list[Membership]:
        ...

    async def add_membership(
        self, user_id: str, group_id: str, assigned_by_id: Optional[str] = None
    ) -> Membership:
        ...

    async def remove_membership(self, user_id: str, group_id: str) -> bool:
        ...


class OverrideStore(Protocol):
    async def get_override(self, user_id: str) -> Optional[IndividualOverride]:
        ...

    async def set_override(
        self,
        user_id: str,
        capabilities: CapabilitySet,
        assigned_by_id: Optional[str] = None,
    ) -> IndividualOverride:
        ...

    async def clear_override(self, user_id: str) -> bool:
        ...


# ============================================================================
# In-memory stores
# ============================================================================

class InMemoryRoleStore:
    """
    In-memory role store used for bootstrap/tests.

    Holds the user -> role reference itself, standing in for users.role_id.
    """

    def __init__(
        self,
        roles: Iterable[Role] | None = None,
        user_roles: dict[str, str] | None = None,
    ):
        self._roles: dict[str, Role] = {}
        for role in roles or ():
            if role.id in self._roles:
                raise ValueError(f"Duplicate role id '{role.id}'.")
            self._roles[role.id] = role
        self._user_roles: dict[str, str] = dict(user_roles or {})

    async def get_role(self, role_id: str) -> Optional[Role]:
        return self._roles.get(role_id)

    async def get_role_for_user(self, user_id: str) -> Optional[Role]:
        role_id = self._user_roles.get(user_id)
        if role_id is None:
            return None
        # A stale reference reads as "no role"
        return self._roles.get(role_id)

    async def list_roles(self) -> list[Role]:
        return sorted(self._roles.values(), key=lambda r: r.name)

    async def create_role(
        self,
        name: str,
        capabilities: CapabilitySet,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> Role:
        if any(role.name == name for role in self._roles.values()):
            raise ValueError(f"Role with name '{name}' already exists.")
        now = _now()
        role = Role(
            id=generate_ulid(),
            name=name,
            capabilities=capabilities,
            description=description,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        self._roles[role.id] = role
        return role

    async def update_role(
        self,
        role_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        capabilities: Optional[CapabilitySet] = None,
        is_active: Optional[bool] = None,
    ) -> Role:
        role = self._roles.get(role_id)
        if role is None:
            raise RecordNotFound("Role", role_id)
        changes = _changes(name=name, description=description, capabilities=capabilities, is_active=is_active)
        updated = replace(role, updated_at=_now(), **changes)
        self._roles[role_id] = updated
        return updated

    async def delete_role(self, role_id: str) -> None:
        if role_id not in self._roles:
            raise RecordNotFound("Role", role_id)
        users = sum(1 for assigned in self._user_roles.values() if assigned == role_id)
        if users:
            raise RoleInUseError(role_id, users)
        del self._roles[role_id]

    async def assign_role_to_user(self, user_id: str, role_id: Optional[str]) -> None:
        if role_id is None:
            self._user_roles.pop(user_id, None)
            return
        if role_id not in self._roles:
            raise RecordNotFound("Role", role_id)
        self._user_roles[user_id] = role_id


class InMemoryGroupStore:
    """In-memory group store used for bootstrap/tests."""

    def __init__(self, groups: Iterable[UserGroup] | None = None):
        self._groups: dict[str, UserGroup] = {}
        for group in groups or ():
            if group.id in self._groups:
                raise ValueError(f"Duplicate group id '{group.id}'.")
            self._groups[group.id] = group
        self.memberships: InMemoryMembershipIndex | None = None

    async def get_group(self, group_id: str) -> Optional[UserGroup]:
        return self._groups.get(group_id)

    async def list_groups(self) -> list[UserGroup]:
        return sorted(self._groups.values(), key=lambda g: g.name)

    async def create_group(
        self,
        name: str,
        capabilities: CapabilitySet,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> UserGroup:
        now = _now()
        group = UserGroup(
            id=generate_ulid(),
            name=name,
            capabilities=capabilities,
            description=description,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        self._groups[group.id] = group
        return group

    async def update_group(
        self,
        group_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        capabilities: Optional[CapabilitySet] = None,
        is_active: Optional[bool] = None,
    ) -> UserGroup:
        group = self._groups.get(group_id)
        if group is None:
            raise RecordNotFound("Group", group_id)
        changes = _changes(name=name, description=description, capabilities=capabilities, is_active=is_active)
        updated = replace(group, updated_at=_now(), **changes)
        self._groups[group_id] = updated
        return updated

    async def delete_group(self, group_id: str) -> None:
        if self._groups.pop(group_id, None) is None:
            raise RecordNotFound("Group", group_id)
        if self.memberships is not None:
            self.memberships.drop_group(group_id)


class InMemoryMembershipIndex:
    """In-memory user -> groups index used for bootstrap/tests."""

    def __init__(self, memberships: Iterable[Membership] | None = None):
        self._by_user: dict[str, dict[str, Membership]] = {}
        for membership in memberships or ():
            self._by_user.setdefault(membership.user_id, {})[membership.group_id] = membership

    async def get_memberships_for_user(self, user_id: str) -> list[Membership]:
        memberships = self._by_user.get(user_id, {}).values()
        return sorted(memberships, key=lambda m: m.assigned_at)

    async def get_group_members(self, group_id: str) -> list[Membership]:
        members = [
            groups[group_id] for groups in self._by_user.values() if group_id in groups
        ]
        return sorted(members, key=lambda m: m.assigned_at)

    async def add_membership(
        self, user_id: str, group_id: str, assigned_by_id: Optional[str] = None
    ) -> Membership:
        groups = self._by_user.setdefault(user_id, {})
        existing = groups.get(group_id)
        if existing is not None:
            return existing
        membership = Membership(
            user_id=user_id,
            group_id=group_id,
            assigned_at=_now(),
            assigned_by_id=assigned_by_id,
        )
        groups[group_id] = membership
        return membership

    async def remove_membership(self, user_id: str, group_id: str) -> bool:
        groups = self._by_user.get(user_id)
        if not groups or group_id not in groups:
            return False
        del groups[group_id]
        return True

    def drop_group(self, group_id: str) -> None:
        for groups in self._by_user.values():
            groups.pop(group_id, None)


class InMemoryOverrideStore:
    """In-memory individual override store used for bootstrap/tests."""

    def __init__(self, overrides: Iterable[IndividualOverride] | None = None):
        self._overrides: dict[str, IndividualOverride] = {}
        for override in overrides or ():
            if override.user_id in self._overrides:
                raise ValueError(f"Duplicate override for user '{override.user_id}'.")
            self._overrides[override.user_id] = override

    async def get_override(self, user_id: str) -> Optional[IndividualOverride]:
        return self._overrides.get(user_id)

    async def set_override(
        self,
        user_id: str,
        capabilities: CapabilitySet,
        assigned_by_id: Optional[str] = None,
    ) -> IndividualOverride:
        now = _now()
        existing = self._overrides.get(user_id)
        if existing is None:
            override = IndividualOverride(
                id=generate_ulid(),
                user_id=user_id,
                capabilities=capabilities,
                assigned_by_id=assigned_by_id,
                created_at=now,
                updated_at=now,
            )
        else:
            override = replace(
                existing,
                capabilities=capabilities,
                assigned_by_id=assigned_by_id,
                updated_at=now,
            )
        self._overrides[user_id] = override
        return override

    async def clear_override(self, user_id: str) -> bool:
        return self._overrides.pop(user_id, None) is not None


def in_memory_stores(
    roles: Iterable[Role] | None = None,
    user_roles: dict[str, str] | None = None,
    groups: Iterable[UserGroup] | None = None,
    memberships: Iterable[Membership] | None = None,
    overrides: Iterable[IndividualOverride] | None = None,
) -> tuple[InMemoryRoleStore, InMemoryGroupStore, InMemoryMembershipIndex, InMemoryOverrideStore]:
    """Build a linked set of in-memory stores (deleting a group drops its memberships)."""
    role_store = InMemoryRoleStore(roles, user_roles)
    group_store = InMemoryGroupStore(groups)
    membership_index = InMemoryMembershipIndex(memberships)
    group_store.memberships = membership_index
    return role_store, group_store, membership_index, InMemoryOverrideStore(overrides)


def _changes(**fields) -> dict:
    return {key: value for key, value in fields.items() if value is not None}
