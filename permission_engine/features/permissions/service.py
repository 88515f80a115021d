"""
Permission administration.

PermissionService is the only write path into the stores. Every mutation
invalidates the resolution cache (when one is configured) and writes an
audit line:

- role and group changes affect an unknown set of users: invalidate_all()
- membership, role assignment and override changes: invalidate(user_id)
"""
from typing import Any, Optional

from permission_engine.core.errors import RecordNotFound
from permission_engine.features.capabilities import CapabilitySet
from permission_engine.features.permissions.cache import ResolutionCache
from permission_engine.features.permissions.entities import (
    IndividualOverride,
    Membership,
    Role,
    UserGroup,
)
from permission_engine.features.permissions.stores import (
    GroupStore,
    MembershipIndex,
    OverrideStore,
    RoleStore,
)
from permission_engine.utils import get_logger


log = get_logger(__name__)


class PermissionService:
    """
    Role, group, membership and override administration.

    Usage:
        service = PermissionService(roles, groups, memberships, overrides, cache=cache)
        role = await service.create_role("Editor", CapabilitySet.grant("canEditProjects"), actor_id=admin_id)
        await service.assign_role(user_id, role.id, actor_id=admin_id)
    """

    def __init__(
        self,
        roles: RoleStore,
        groups: GroupStore,
        memberships: MembershipIndex,
        overrides: OverrideStore,
        cache: Optional[ResolutionCache] = None,
    ):
        self.roles = roles
        self.groups = groups
        self.memberships = memberships
        self.overrides = overrides
        self.cache = cache

    # ============================================================================
    # Roles
    # ============================================================================

    async def list_roles(self) -> list[Role]:
        return await self.roles.list_roles()

    async def get_role(self, role_id: str) -> Role:
        role = await self.roles.get_role(role_id)
        if role is None:
            raise RecordNotFound("Role", role_id)
        return role

    async def create_role(
        self,
        name: str,
        capabilities: CapabilitySet,
        description: Optional[str] = None,
        is_active: bool = True,
        actor_id: Optional[str] = None,
    ) -> Role:
        role = await self.roles.create_role(name, capabilities, description=description, is_active=is_active)
        self._invalidate_all()
        self._audit("create", "role", role.id, actor_id, name=name, granted=len(capabilities.grants))
        return role

    async def update_role(self, role_id: str, actor_id: Optional[str] = None, **changes: Any) -> Role:
        role = await self.roles.update_role(role_id, **changes)
        self._invalidate_all()
        self._audit("update", "role", role_id, actor_id, fields=sorted(k for k, v in changes.items() if v is not None))
        return role

    async def delete_role(self, role_id: str, actor_id: Optional[str] = None) -> None:
        await self.roles.delete_role(role_id)
        self._invalidate_all()
        self._audit("delete", "role", role_id, actor_id)

    async def assign_role(self, user_id: str, role_id: Optional[str], actor_id: Optional[str] = None) -> None:
        await self.roles.assign_role_to_user(user_id, role_id)
        self._invalidate(user_id)
        self._audit("assign_role", "user", user_id, actor_id, role_id=role_id)

    # ============================================================================
    # Groups
    # ============================================================================

    async def list_groups(self) -> list[UserGroup]:
        return await self.groups.list_groups()

    async def get_group(self, group_id: str) -> UserGroup:
        group = await self.groups.get_group(group_id)
        if group is None:
            raise RecordNotFound("Group", group_id)
        return group

    async def create_group(
        self,
        name: str,
        capabilities: CapabilitySet,
        description: Optional[str] = None,
        is_active: bool = True,
        actor_id: Optional[str] = None,
    ) -> UserGroup:
        group = await self.groups.create_group(name, capabilities, description=description, is_active=is_active)
        self._invalidate_all()
        self._audit("create", "group", group.id, actor_id, name=name, granted=len(capabilities.grants))
        return group

    async def update_group(self, group_id: str, actor_id: Optional[str] = None, **changes: Any) -> UserGroup:
        group = await self.groups.update_group(group_id, **changes)
        self._invalidate_all()
        self._audit("update", "group", group_id, actor_id, fields=sorted(k for k, v in changes.items() if v is not None))
        return group

    async def delete_group(self, group_id: str, actor_id: Optional[str] = None) -> None:
        await self.groups.delete_group(group_id)
        self._invalidate_all()
        self._audit("delete", "group", group_id, actor_id)

    async def list_members(self, group_id: str) -> list[Membership]:
        await self.get_group(group_id)
        return await self.memberships.get_group_members(group_id)

    async def list_user_groups(self, user_id: str) -> list[Membership]:
        return await self.memberships.get_memberships_for_user(user_id)

    async def add_member(self, group_id: str, user_id: str, actor_id: Optional[str] = None) -> Membership:
        await self.get_group(group_id)
        membership = await self.memberships.add_membership(user_id, group_id, assigned_by_id=actor_id)
        self._invalidate(user_id)
        self._audit("add_member", "group", group_id, actor_id, user_id=user_id)
        return membership

    async def remove_member(self, group_id: str, user_id: str, actor_id: Optional[str] = None) -> bool:
        removed = await self.memberships.remove_membership(user_id, group_id)
        self._invalidate(user_id)
        if removed:
            self._audit("remove_member", "group", group_id, actor_id, user_id=user_id)
        return removed

    # ============================================================================
    # Individual overrides
    # ============================================================================

    async def get_override(self, user_id: str) -> Optional[IndividualOverride]:
        return await self.overrides.get_override(user_id)

    async def set_override(
        self,
        user_id: str,
        capabilities: CapabilitySet,
        actor_id: Optional[str] = None,
    ) -> IndividualOverride:
        override = await self.overrides.set_override(user_id, capabilities, assigned_by_id=actor_id)
        self._invalidate(user_id)
        self._audit("set_override", "user", user_id, actor_id, granted=len(capabilities.grants))
        return override

    async def clear_override(self, user_id: str, actor_id: Optional[str] = None) -> bool:
        removed = await self.overrides.clear_override(user_id)
        self._invalidate(user_id)
        if removed:
            self._audit("clear_override", "user", user_id, actor_id)
        return removed

    # ============================================================================
    # Helpers
    # ============================================================================

    def _invalidate(self, user_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(user_id)

    def _invalidate_all(self) -> None:
        if self.cache is not None:
            self.cache.invalidate_all()

    @staticmethod
    def _audit(action: str, resource_type: str, resource_id: str, actor_id: Optional[str], **details: Any) -> None:
        log.info(
            "Audit: %s %s %s by %s %s",
            action, resource_type, resource_id, actor_id or "system", details or "",
        )
