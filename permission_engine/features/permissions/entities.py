"""
Store-independent records returned by the role, group, membership and
override stores.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from permission_engine.features.capabilities import CapabilitySet


@dataclass(frozen=True)
class Role:
    id: str
    name: str
    capabilities: CapabilitySet = field(default_factory=CapabilitySet.none)
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class UserGroup:
    id: str
    name: str
    capabilities: CapabilitySet = field(default_factory=CapabilitySet.none)
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Membership:
    user_id: str
    group_id: str
    assigned_at: datetime
    assigned_by_id: Optional[str] = None


@dataclass(frozen=True)
class IndividualOverride:
    id: str
    user_id: str
    capabilities: CapabilitySet
    assigned_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SecuritySummary:
    """Per-tier breakdown of one resolution."""
    user_id: str
    role_id: Optional[str]
    role_capabilities: CapabilitySet
    group_capabilities: dict[str, CapabilitySet]
    override_capabilities: Optional[CapabilitySet]
    resolved: CapabilitySet
    skipped_group_ids: tuple[str, ...] = ()
