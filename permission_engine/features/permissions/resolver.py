"""
Permission resolution.

Combines a user's role grant, the grants of every active group the user
belongs to, and the user's individual override into one CapabilitySet,
most-permissive-wins:

    resolved = role | group_1 | ... | group_n | override

Every tier that is missing contributes the all-false set, so a user with
nothing (including a user id that does not exist) resolves to all-false.
Overrides can only add grants; there is no way to express a revocation.

Store failures:
- role, membership list, override: raise ResolutionError (deny)
- one group among several: skipped with a warning under the "skip" policy,
  ResolutionError under "fail_closed"
"""
from __future__ import annotations

from typing import Optional

from permission_engine.core.errors import InvalidCapabilityName, ResolutionError, StoreUnavailable
from permission_engine.features.capabilities import Capability, CapabilitySet
from permission_engine.features.permissions.entities import Role, SecuritySummary
from permission_engine.features.permissions.stores import (
    GroupStore,
    MembershipIndex,
    OverrideStore,
    RoleStore,
)
from permission_engine.utils import get_logger


log = get_logger(__name__)

GROUP_FAILURE_SKIP = "skip"
GROUP_FAILURE_FAIL_CLOSED = "fail_closed"
GROUP_FAILURE_POLICIES = frozenset({GROUP_FAILURE_SKIP, GROUP_FAILURE_FAIL_CLOSED})


class PermissionResolver:
    """
    Stateless resolver over the four stores.

    Usage:
        resolver = PermissionResolver(roles, groups, memberships, overrides)
        caps = await resolver.resolve(user_id)
        if await resolver.check(user_id, Capability.DELETE_PROJECTS):
            ...
    """

    def __init__(
        self,
        roles: RoleStore,
        groups: GroupStore,
        memberships: MembershipIndex,
        overrides: OverrideStore,
        *,
        group_failure_policy: str = GROUP_FAILURE_SKIP,
        strict_capabilities: bool = True,
    ):
        if group_failure_policy not in GROUP_FAILURE_POLICIES:
            raise ValueError(
                f"group_failure_policy '{group_failure_policy}' not valid. "
                f"Must be one of: {sorted(GROUP_FAILURE_POLICIES)}"
            )
        self.roles = roles
        self.groups = groups
        self.memberships = memberships
        self.overrides = overrides
        self.group_failure_policy = group_failure_policy
        self.strict_capabilities = strict_capabilities

    async def resolve(self, user_id: str) -> CapabilitySet:
        """Resolve the user's full capability set."""
        summary = await self.explain(user_id)
        return summary.resolved

    async def check(self, user_id: str, capability: Capability | str) -> bool:
        """
        Check a single capability.

        Unknown capability names are a programming error: they raise in strict
        mode and are denied (logged) otherwise.
        """
        resolved = await self.resolve(user_id)
        return self.lookup(resolved, user_id, capability)

    def lookup(self, resolved: CapabilitySet, user_id: str, capability: Capability | str) -> bool:
        """Read one capability from an already resolved set, honouring strict mode."""
        try:
            return resolved.get(capability)
        except InvalidCapabilityName:
            if self.strict_capabilities:
                raise
            log.error("Permission check for unknown capability %r (user %s) denied", capability, user_id)
            return False

    async def explain(self, user_id: str) -> SecuritySummary:
        """Resolve and report each tier's contribution."""
        role = await self._role_for(user_id)
        role_caps = role.capabilities if role is not None else CapabilitySet.none()

        group_caps, skipped = await self._group_grants(user_id)
        groups_combined = CapabilitySet.none()
        for caps in group_caps.values():
            groups_combined = groups_combined | caps

        override_caps = await self._override_for(user_id)

        resolved = role_caps | groups_combined | (override_caps or CapabilitySet.none())
        log.debug(
            "Resolved user %s: role=%s groups=%d override=%s granted=%d",
            user_id,
            role.id if role else None,
            len(group_caps),
            override_caps is not None,
            len(resolved.grants),
        )
        return SecuritySummary(
            user_id=user_id,
            role_id=role.id if role else None,
            role_capabilities=role_caps,
            group_capabilities=group_caps,
            override_capabilities=override_caps,
            resolved=resolved,
            skipped_group_ids=tuple(skipped),
        )

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    async def _role_for(self, user_id: str) -> Optional[Role]:
        """
        The user's role, or None.

        An inactive role counts as no role, the same rule groups follow.
        Deactivating a role therefore revokes its grant for every holder
        without unassigning it.
        """
        try:
            role = await self.roles.get_role_for_user(user_id)
        except StoreUnavailable as e:
            log.error("Role lookup failed for user %s: %s", user_id, e)
            raise ResolutionError(user_id, "role") from e
        if role is not None and not role.is_active:
            log.debug("Role %s for user %s is inactive, ignoring", role.id, user_id)
            return None
        return role

    async def _group_grants(self, user_id: str) -> tuple[dict[str, CapabilitySet], list[str]]:
        try:
            memberships = await self.memberships.get_memberships_for_user(user_id)
        except StoreUnavailable as e:
            log.error("Membership lookup failed for user %s: %s", user_id, e)
            raise ResolutionError(user_id, "membership") from e

        grants: dict[str, CapabilitySet] = {}
        skipped: list[str] = []
        for membership in memberships:
            try:
                group = await self.groups.get_group(membership.group_id)
            except StoreUnavailable as e:
                if self.group_failure_policy == GROUP_FAILURE_FAIL_CLOSED:
                    log.error(
                        "Group %s lookup failed for user %s, failing closed: %s",
                        membership.group_id, user_id, e,
                    )
                    raise ResolutionError(user_id, "group") from e
                log.warning(
                    "Group %s lookup failed for user %s, skipping its grant: %s",
                    membership.group_id, user_id, e,
                )
                skipped.append(membership.group_id)
                continue

            if group is None or not group.is_active:
                continue
            grants[group.id] = group.capabilities
        return grants, skipped

    async def _override_for(self, user_id: str) -> Optional[CapabilitySet]:
        try:
            override = await self.overrides.get_override(user_id)
        except StoreUnavailable as e:
            log.error("Override lookup failed for user %s: %s", user_id, e)
            raise ResolutionError(user_id, "override") from e
        return override.capabilities if override is not None else None
