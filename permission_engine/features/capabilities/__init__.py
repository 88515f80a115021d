"""
Capability catalog and the immutable CapabilitySet value type.
"""
from permission_engine.features.capabilities.catalog import (
    ALL_CAPABILITIES,
    CAPABILITY_DOMAINS,
    CAPABILITY_NAMES,
    Capability,
)
from permission_engine.features.capabilities.capability_set import CapabilitySet, to_capability

__all__ = [
    "ALL_CAPABILITIES",
    "CAPABILITY_DOMAINS",
    "CAPABILITY_NAMES",
    "Capability",
    "CapabilitySet",
    "to_capability",
]
