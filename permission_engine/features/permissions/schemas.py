"""
Pydantic schemas for permission administration.

Capability grants travel as {capability name: bool}. Requests may send a
partial mapping (missing names are False) but unknown names are rejected;
responses always carry the full catalog in order.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from permission_engine.features.capabilities import CAPABILITY_NAMES, CapabilitySet
from permission_engine.features.permissions.entities import (
    IndividualOverride,
    Membership,
    Role,
    SecuritySummary,
    UserGroup,
)


def _known_capabilities(value: Optional[Dict[str, bool]]) -> Optional[Dict[str, bool]]:
    if value is None:
        return value
    unknown = sorted(set(value) - CAPABILITY_NAMES)
    if unknown:
        raise ValueError(f"Unknown capabilities: {', '.join(unknown)}")
    return value


def to_capability_set(permissions: Dict[str, bool]) -> CapabilitySet:
    """Build a CapabilitySet from a validated request mapping."""
    return CapabilitySet.grant(*(name for name, granted in permissions.items() if granted))


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Unique role name")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""
    permissions: Dict[str, bool] = Field(default_factory=dict, description="Capability grants")
    is_active: bool = True

    @field_validator("permissions")
    @classmethod
    def permissions_known(cls, v: Optional[Dict[str, bool]]) -> Optional[Dict[str, bool]]:
        """Reject capability names outside the catalog."""
        return _known_capabilities(v)


class RoleUpdate(BaseModel):
    """Schema for updating a role. Omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    permissions: Optional[Dict[str, bool]] = None
    is_active: Optional[bool] = None

    @field_validator("permissions")
    @classmethod
    def permissions_known(cls, v: Optional[Dict[str, bool]]) -> Optional[Dict[str, bool]]:
        """Reject capability names outside the catalog."""
        return _known_capabilities(v)


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    permissions: Dict[str, bool]
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            permissions=role.capabilities.to_dict(),
            is_active=role.is_active,
            created_at=role.created_at,
            updated_at=role.updated_at,
        )


class AssignRoleToUser(BaseModel):
    """Schema for assigning (or clearing, with null) a user's role."""
    role_id: Optional[str] = Field(None, description="Role ID, or null to remove the role")


# ============================================================================
# Group Schemas
# ============================================================================

class GroupBase(BaseModel):
    """Base group schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Group name")
    description: Optional[str] = Field(None, max_length=1000, description="Group description")


class GroupCreate(GroupBase):
    """Schema for creating a new group."""
    permissions: Dict[str, bool] = Field(default_factory=dict, description="Capability grants")
    is_active: bool = True

    @field_validator("permissions")
    @classmethod
    def permissions_known(cls, v: Optional[Dict[str, bool]]) -> Optional[Dict[str, bool]]:
        """Reject capability names outside the catalog."""
        return _known_capabilities(v)


class GroupUpdate(BaseModel):
    """Schema for updating a group. Omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    permissions: Optional[Dict[str, bool]] = None
    is_active: Optional[bool] = None

    @field_validator("permissions")
    @classmethod
    def permissions_known(cls, v: Optional[Dict[str, bool]]) -> Optional[Dict[str, bool]]:
        """Reject capability names outside the catalog."""
        return _known_capabilities(v)


class GroupResponse(GroupBase):
    """Schema for group response."""
    id: str
    permissions: Dict[str, bool]
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, group: UserGroup) -> "GroupResponse":
        return cls(
            id=group.id,
            name=group.name,
            description=group.description,
            permissions=group.capabilities.to_dict(),
            is_active=group.is_active,
            created_at=group.created_at,
            updated_at=group.updated_at,
        )


class AssignUserToGroup(BaseModel):
    """Schema for adding a user to a group."""
    user_id: str = Field(..., min_length=1, description="User ID")


class MembershipResponse(BaseModel):
    """Schema for membership response."""
    user_id: str
    group_id: str
    assigned_at: datetime
    assigned_by_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, membership: Membership) -> "MembershipResponse":
        return cls.model_validate(membership)


# ============================================================================
# Individual Override Schemas
# ============================================================================

class OverrideSet(BaseModel):
    """Schema for setting a user's individual override. Replaces any existing grants."""
    permissions: Dict[str, bool] = Field(default_factory=dict, description="Additional capability grants")

    @field_validator("permissions")
    @classmethod
    def permissions_known(cls, v: Optional[Dict[str, bool]]) -> Optional[Dict[str, bool]]:
        """Reject capability names outside the catalog."""
        return _known_capabilities(v)


class OverrideResponse(BaseModel):
    """Schema for individual override response."""
    id: str
    user_id: str
    permissions: Dict[str, bool]
    assigned_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, override: IndividualOverride) -> "OverrideResponse":
        return cls(
            id=override.id,
            user_id=override.user_id,
            permissions=override.capabilities.to_dict(),
            assigned_by_id=override.assigned_by_id,
            created_at=override.created_at,
            updated_at=override.updated_at,
        )


# ============================================================================
# Resolution Schemas
# ============================================================================

class ResolvedPermissionsResponse(BaseModel):
    """A user's resolved capabilities."""
    user_id: str
    permissions: Dict[str, bool]
    granted: List[str]

    @classmethod
    def from_capabilities(cls, user_id: str, capabilities: CapabilitySet) -> "ResolvedPermissionsResponse":
        return cls(
            user_id=user_id,
            permissions=capabilities.to_dict(),
            granted=[cap.value for cap in capabilities.granted()],
        )


class SecuritySummaryResponse(BaseModel):
    """Per-tier breakdown of a user's resolved capabilities."""
    user_id: str
    role_id: Optional[str]
    role_permissions: Dict[str, bool]
    group_permissions: Dict[str, Dict[str, bool]]
    override_permissions: Optional[Dict[str, bool]]
    resolved: Dict[str, bool]
    skipped_group_ids: List[str] = []

    @classmethod
    def from_summary(cls, summary: SecuritySummary) -> "SecuritySummaryResponse":
        override = summary.override_capabilities
        return cls(
            user_id=summary.user_id,
            role_id=summary.role_id,
            role_permissions=summary.role_capabilities.to_dict(),
            group_permissions={
                group_id: caps.to_dict() for group_id, caps in summary.group_capabilities.items()
            },
            override_permissions=override.to_dict() if override is not None else None,
            resolved=summary.resolved.to_dict(),
            skipped_group_ids=list(summary.skipped_group_ids),
        )


class PermissionCheckResponse(BaseModel):
    """Schema for a single capability check."""
    user_id: str
    capability: str
    allowed: bool


class CapabilityCatalogResponse(BaseModel):
    """The capability catalog grouped by domain."""
    domains: Dict[str, List[str]]
    total: int
