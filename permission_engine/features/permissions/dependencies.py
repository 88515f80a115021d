"""
FastAPI dependencies for permission checks.

The resolver and the administration service are built once at startup and
kept on app.state; tests swap them through app.dependency_overrides.
"""
from typing import Union
from fastapi import Depends, HTTPException, Request, status

from permission_engine.core.errors import ResolutionError
from permission_engine.features.capabilities import Capability, to_capability
from permission_engine.features.permissions.cache import CachedResolver
from permission_engine.features.permissions.resolver import PermissionResolver
from permission_engine.features.permissions.service import PermissionService
from permission_engine.features.users.dependencies import get_current_user_id
from permission_engine.utils import get_logger


log = get_logger(__name__)

Resolver = Union[PermissionResolver, CachedResolver]


def get_resolver(request: Request) -> Resolver:
    """The application's resolver (cached when a cache TTL is configured)."""
    return request.app.state.resolver


def get_permission_service(request: Request) -> PermissionService:
    """The application's administration service."""
    return request.app.state.permission_service


def require_capability(capability: Union[Capability, str]):
    """
    FastAPI dependency to require a single capability.

    Usage:
        @router.delete("/roles/{role_id}")
        async def delete_role(
            role_id: str,
            user_id: str = Depends(require_capability(Capability.DELETE_ROLES))
        ):
            # User may delete roles
            pass

    Returns:
        Dependency function that returns the current user id if it holds the capability

    Raises:
        InvalidCapabilityName: immediately, if `capability` is not in the catalog
        HTTPException: 403 if the capability is not granted or could not be resolved
    """
    required = to_capability(capability)

    async def capability_dependency(
        user_id: str = Depends(get_current_user_id),
        resolver: Resolver = Depends(get_resolver),
    ) -> str:
        try:
            allowed = await resolver.check(user_id, required)
        except ResolutionError as e:
            log.error(f"Denying {required.value} for user {user_id}: {e}")
            allowed = False

        if not allowed:
            log.debug(f"User {user_id} denied {required.value}")
            # Same response whether the grant is missing or resolution failed
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permission denied",
            )
        return user_id

    return capability_dependency
