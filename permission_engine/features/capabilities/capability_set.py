"""
Immutable, total capability sets.

A CapabilitySet answers True or False for every capability in the catalog.
Internally it only records which capabilities are granted, so a capability
with no explicit value is False and there is no third "unknown" state.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

from permission_engine.core.errors import InvalidCapabilityName
from permission_engine.features.capabilities.catalog import ALL_CAPABILITIES, Capability
from permission_engine.utils import get_logger


log = get_logger(__name__)


def to_capability(name: Capability | str) -> Capability:
    """Coerce a catalog member or its wire name, raising InvalidCapabilityName otherwise."""
    if isinstance(name, Capability):
        return name
    if isinstance(name, str):
        try:
            return Capability(name)
        except ValueError:
            raise InvalidCapabilityName(name) from None
    raise InvalidCapabilityName(name)


@dataclass(frozen=True)
class CapabilitySet:
    """
    Per-capability boolean grant, total over the catalog.

    Usage:
        editor = CapabilitySet.grant(Capability.SEE_PROJECTS, "canEditProjects")
        resolved = role_caps | group_caps | override_caps
        if resolved.get(Capability.EDIT_PROJECTS):
            ...
    """
    grants: frozenset[Capability] = frozenset()

    def __post_init__(self):
        normalized = frozenset(to_capability(name) for name in self.grants)
        object.__setattr__(self, "grants", normalized)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def none(cls) -> CapabilitySet:
        """The all-false set (fail-closed default)."""
        return _NONE

    @classmethod
    def all(cls) -> CapabilitySet:
        """The all-true set."""
        return _ALL

    @classmethod
    def grant(cls, *names: Capability | str) -> CapabilitySet:
        """A set granting exactly `names`."""
        return cls(frozenset(names))

    @classmethod
    def with_all(
        cls,
        value: bool = False,
        names: Iterable[Capability | str] | None = None,
    ) -> CapabilitySet:
        """
        Set `names` (default: the whole catalog) to `value`; everything else is False.
        """
        if not value:
            if names is not None:
                # still reject unknown names
                for name in names:
                    to_capability(name)
            return _NONE
        if names is None:
            return _ALL
        return cls(frozenset(names))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None, *, source: str = "") -> CapabilitySet:
        """
        Load a stored {name: bool} record.

        Unknown names are dropped with a warning, missing names are False and
        only a literal True grants.
        """
        if not mapping:
            return _NONE
        granted = []
        for name, value in mapping.items():
            try:
                capability = to_capability(name)
            except InvalidCapabilityName:
                log.warning("Ignoring unknown capability %r in %s", name, source or "stored record")
                continue
            if value is True:
                granted.append(capability)
        return cls(frozenset(granted))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: Capability | str) -> bool:
        """Return the grant for `name`; unknown names raise InvalidCapabilityName."""
        return to_capability(name) in self.grants

    def __getitem__(self, name: Capability | str) -> bool:
        return self.get(name)

    def __iter__(self) -> Iterator[Capability]:
        return iter(ALL_CAPABILITIES)

    def __len__(self) -> int:
        return len(ALL_CAPABILITIES)

    def items(self) -> Iterator[tuple[Capability, bool]]:
        for capability in ALL_CAPABILITIES:
            yield capability, capability in self.grants

    def granted(self) -> tuple[Capability, ...]:
        """Granted capabilities in catalog order."""
        return tuple(cap for cap in ALL_CAPABILITIES if cap in self.grants)

    def is_empty(self) -> bool:
        return not self.grants

    # ------------------------------------------------------------------
    # Combination
    # ------------------------------------------------------------------

    def union(self, other: CapabilitySet) -> CapabilitySet:
        """Per-capability logical OR."""
        if not isinstance(other, CapabilitySet):
            raise TypeError(f"Cannot union CapabilitySet with {type(other).__name__}.")
        if other.grants <= self.grants:
            return self
        if self.grants <= other.grants:
            return other
        return CapabilitySet(self.grants | other.grants)

    def __or__(self, other: object) -> CapabilitySet:
        if not isinstance(other, CapabilitySet):
            return NotImplemented
        return self.union(other)

    def covers(self, other: CapabilitySet) -> bool:
        """True if every capability granted by `other` is granted here."""
        return other.grants <= self.grants

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, bool]:
        """Full {wire name: bool} mapping in catalog order."""
        return {cap.value: cap in self.grants for cap in ALL_CAPABILITIES}

    def __repr__(self) -> str:
        names = ", ".join(cap.value for cap in self.granted())
        return f"<CapabilitySet(granted=[{names}])>"


_NONE = CapabilitySet()
_ALL = CapabilitySet(frozenset(ALL_CAPABILITIES))
