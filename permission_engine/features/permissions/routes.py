"""
Permission management API routes.

Provides endpoints for inspecting resolved capabilities and for managing
roles, groups, memberships and individual overrides.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status

from permission_engine.core.errors import InvalidCapabilityName, RecordNotFound, ResolutionError, RoleInUseError
from permission_engine.features.capabilities import CAPABILITY_DOMAINS, CAPABILITY_NAMES, Capability, to_capability
from permission_engine.features.permissions.dependencies import (
    Resolver,
    get_permission_service,
    get_resolver,
    require_capability,
)
from permission_engine.features.permissions.schemas import (
    AssignRoleToUser,
    AssignUserToGroup,
    CapabilityCatalogResponse,
    GroupCreate,
    GroupResponse,
    GroupUpdate,
    MembershipResponse,
    OverrideResponse,
    OverrideSet,
    PermissionCheckResponse,
    ResolvedPermissionsResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    SecuritySummaryResponse,
    to_capability_set,
)
from permission_engine.features.permissions.service import PermissionService
from permission_engine.features.users.dependencies import get_current_user_id
from permission_engine.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _not_found(e: RecordNotFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _denied(e: ResolutionError) -> HTTPException:
    log.error(f"Resolution failed: {e}")
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")


# ============================================================================
# Catalog & Resolution Routes
# ============================================================================

@router.get("/capabilities", response_model=CapabilityCatalogResponse)
async def list_capabilities(
    current_user_id: str = Depends(get_current_user_id)
):
    """List every capability, grouped by domain."""
    return CapabilityCatalogResponse(
        domains={domain: [cap.value for cap in caps] for domain, caps in CAPABILITY_DOMAINS.items()},
        total=len(CAPABILITY_NAMES),
    )


@router.get("/me", response_model=ResolvedPermissionsResponse)
async def get_my_permissions(
    current_user_id: str = Depends(get_current_user_id),
    resolver: Resolver = Depends(get_resolver)
):
    """Get the current user's resolved capabilities."""
    try:
        resolved = await resolver.resolve(current_user_id)
    except ResolutionError as e:
        raise _denied(e)
    return ResolvedPermissionsResponse.from_capabilities(current_user_id, resolved)


@router.get("/users/{user_id}/resolved", response_model=ResolvedPermissionsResponse)
async def get_user_permissions(
    user_id: str,
    resolver: Resolver = Depends(get_resolver),
    current_user_id: str = Depends(require_capability(Capability.SEE_SECURITY_SETTINGS))
):
    """Get a user's resolved capabilities."""
    try:
        resolved = await resolver.resolve(user_id)
    except ResolutionError as e:
        raise _denied(e)
    return ResolvedPermissionsResponse.from_capabilities(user_id, resolved)


@router.get("/users/{user_id}/summary", response_model=SecuritySummaryResponse)
async def get_user_security_summary(
    user_id: str,
    resolver: Resolver = Depends(get_resolver),
    current_user_id: str = Depends(require_capability(Capability.SEE_SECURITY_SETTINGS))
):
    """Get the role, group and override contributions behind a user's capabilities."""
    try:
        summary = await resolver.explain(user_id)
    except ResolutionError as e:
        raise _denied(e)
    return SecuritySummaryResponse.from_summary(summary)


@router.get("/users/{user_id}/check/{capability}", response_model=PermissionCheckResponse)
async def check_user_permission(
    user_id: str,
    capability: str,
    resolver: Resolver = Depends(get_resolver),
    current_user_id: str = Depends(require_capability(Capability.SEE_SECURITY_SETTINGS))
):
    """Check whether a user holds a single capability."""
    try:
        required = to_capability(capability)
    except InvalidCapabilityName as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    try:
        allowed = await resolver.check(user_id, required)
    except ResolutionError as e:
        raise _denied(e)
    return PermissionCheckResponse(user_id=user_id, capability=required.value, allowed=allowed)


# ============================================================================
# Individual Override Routes
# ============================================================================

@router.get("/users/{user_id}/override", response_model=OverrideResponse)
async def get_user_override(
    user_id: str,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.SEE_SECURITY_SETTINGS))
):
    """Get a user's individual override."""
    override = await service.get_override(user_id)
    if override is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No individual permissions for this user"
        )
    return OverrideResponse.from_entity(override)


@router.put("/users/{user_id}/override", response_model=OverrideResponse)
async def set_user_override(
    user_id: str,
    body: OverrideSet,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.MODIFY_SECURITY_SETTINGS))
):
    """Set (replace) a user's individual override."""
    try:
        override = await service.set_override(user_id, to_capability_set(body.permissions), actor_id=current_user_id)
    except RecordNotFound as e:
        raise _not_found(e)
    return OverrideResponse.from_entity(override)


@router.delete("/users/{user_id}/override", status_code=status.HTTP_204_NO_CONTENT)
async def clear_user_override(
    user_id: str,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.DELETE_SECURITY_SETTINGS))
):
    """Remove a user's individual override. Succeeds if there was none."""
    await service.clear_override(user_id, actor_id=current_user_id)


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.SEE_ROLES))
):
    """List all roles."""
    return [RoleResponse.from_entity(role) for role in await service.list_roles()]


@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.SEE_ROLES))
):
    """Get a role by ID."""
    try:
        return RoleResponse.from_entity(await service.get_role(role_id))
    except RecordNotFound as e:
        raise _not_found(e)


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.MODIFY_ROLES))
):
    """Create a new role."""
    try:
        created = await service.create_role(
            role.name,
            to_capability_set(role.permissions),
            description=role.description,
            is_active=role.is_active,
            actor_id=current_user_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return RoleResponse.from_entity(created)


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.EDIT_ROLES))
):
    """Update a role."""
    changes = role_update.model_dump(exclude_unset=True)
    if changes.get("permissions") is not None:
        changes["capabilities"] = to_capability_set(changes["permissions"])
    changes.pop("permissions", None)
    try:
        updated = await service.update_role(role_id, actor_id=current_user_id, **changes)
    except RecordNotFound as e:
        raise _not_found(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return RoleResponse.from_entity(updated)


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.DELETE_ROLES))
):
    """Delete a role. Refused while any user still holds it."""
    try:
        await service.delete_role(role_id, actor_id=current_user_id)
    except RecordNotFound as e:
        raise _not_found(e)
    except RoleInUseError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.put("/users/{user_id}/role", status_code=status.HTTP_204_NO_CONTENT)
async def assign_user_role(
    user_id: str,
    assignment: AssignRoleToUser,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.EDIT_USERS))
):
    """Assign a role to a user, or remove it with a null role_id."""
    try:
        await service.assign_role(user_id, assignment.role_id, actor_id=current_user_id)
    except RecordNotFound as e:
        raise _not_found(e)


# ============================================================================
# Group Routes
# ============================================================================

@router.get("/groups", response_model=List[GroupResponse])
async def list_groups(
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.SEE_GROUPS))
):
    """List all groups."""
    return [GroupResponse.from_entity(group) for group in await service.list_groups()]


@router.get("/groups/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: str,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.SEE_GROUPS))
):
    """Get a group by ID."""
    try:
        return GroupResponse.from_entity(await service.get_group(group_id))
    except RecordNotFound as e:
        raise _not_found(e)


@router.post("/groups", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    group: GroupCreate,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.MODIFY_GROUPS))
):
    """Create a new group."""
    created = await service.create_group(
        group.name,
        to_capability_set(group.permissions),
        description=group.description,
        is_active=group.is_active,
        actor_id=current_user_id,
    )
    return GroupResponse.from_entity(created)


@router.put("/groups/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: str,
    group_update: GroupUpdate,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.EDIT_GROUPS))
):
    """Update a group. Setting is_active to false revokes its grant for every member."""
    changes = group_update.model_dump(exclude_unset=True)
    if changes.get("permissions") is not None:
        changes["capabilities"] = to_capability_set(changes["permissions"])
    changes.pop("permissions", None)
    try:
        updated = await service.update_group(group_id, actor_id=current_user_id, **changes)
    except RecordNotFound as e:
        raise _not_found(e)
    return GroupResponse.from_entity(updated)


@router.delete("/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: str,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.DELETE_GROUPS))
):
    """Delete a group and its memberships."""
    try:
        await service.delete_group(group_id, actor_id=current_user_id)
    except RecordNotFound as e:
        raise _not_found(e)


@router.get("/groups/{group_id}/members", response_model=List[MembershipResponse])
async def list_group_members(
    group_id: str,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.SEE_GROUPS))
):
    """List a group's members."""
    try:
        members = await service.list_members(group_id)
    except RecordNotFound as e:
        raise _not_found(e)
    return [MembershipResponse.from_entity(member) for member in members]


@router.post("/groups/{group_id}/members", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def add_group_member(
    group_id: str,
    assignment: AssignUserToGroup,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.MODIFY_GROUPS))
):
    """Add a user to a group. Adding an existing member returns the existing membership."""
    try:
        membership = await service.add_member(group_id, assignment.user_id, actor_id=current_user_id)
    except RecordNotFound as e:
        raise _not_found(e)
    return MembershipResponse.from_entity(membership)


@router.delete("/groups/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_group_member(
    group_id: str,
    user_id: str,
    service: PermissionService = Depends(get_permission_service),
    current_user_id: str = Depends(require_capability(Capability.MODIFY_GROUPS))
):
    """Remove a user from a group. Succeeds if the user was not a member."""
    await service.remove_member(group_id, user_id, actor_id=current_user_id)
