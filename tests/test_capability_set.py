"""Capability catalog and CapabilitySet tests."""

from __future__ import annotations

import logging

import pytest

from permission_engine.core.errors import InvalidCapabilityName
from permission_engine.features.capabilities import (
    ALL_CAPABILITIES,
    CAPABILITY_DOMAINS,
    CAPABILITY_NAMES,
    Capability,
    CapabilitySet,
    to_capability,
)


SAMPLE_SETS = [
    CapabilitySet.none(),
    CapabilitySet.all(),
    CapabilitySet.grant(Capability.SEE_PROJECTS, Capability.EDIT_PROJECTS),
    CapabilitySet.grant("canSeeRaidLogs"),
    CapabilitySet.grant(Capability.SEE_PROJECTS, Capability.MANAGE_SYSTEM),
]


class TestCatalog:
    """Tests for the fixed capability catalog."""

    def test_domains_partition_the_catalog(self) -> None:
        """Every capability belongs to exactly one domain."""
        seen = [cap for caps in CAPABILITY_DOMAINS.values() for cap in caps]
        assert len(seen) == len(set(seen))
        assert set(seen) == set(ALL_CAPABILITIES)

    def test_wire_names_follow_convention(self) -> None:
        """All wire names start with 'can'."""
        assert all(name.startswith("can") for name in CAPABILITY_NAMES)
        assert len(CAPABILITY_NAMES) == len(Capability)

    def test_security_domain_is_graduated(self) -> None:
        """Security settings carry See, Modify, Edit and Delete."""
        assert [cap.value for cap in CAPABILITY_DOMAINS["security_settings"]] == [
            "canSeeSecuritySettings",
            "canModifySecuritySettings",
            "canEditSecuritySettings",
            "canDeleteSecuritySettings",
        ]

    def test_to_capability_accepts_member_and_wire_name(self) -> None:
        """Both the enum member and its value coerce to the member."""
        assert to_capability(Capability.SEE_USERS) is Capability.SEE_USERS
        assert to_capability("canSeeUsers") is Capability.SEE_USERS

    def test_to_capability_rejects_unknown(self) -> None:
        """Unknown names raise InvalidCapabilityName."""
        with pytest.raises(InvalidCapabilityName) as exc_info:
            to_capability("canFly")
        assert exc_info.value.name == "canFly"
        assert "canFly" in str(exc_info.value)

    def test_invalid_capability_is_a_key_error(self) -> None:
        """InvalidCapabilityName can be caught as KeyError."""
        with pytest.raises(KeyError):
            to_capability(42)


class TestCapabilitySetLookup:
    """Tests for reading a CapabilitySet."""

    def test_none_is_all_false(self) -> None:
        """The empty set answers False for every capability."""
        caps = CapabilitySet.none()
        assert all(caps.get(cap) is False for cap in Capability)
        assert caps.is_empty()

    def test_all_is_all_true(self) -> None:
        """The full set answers True for every capability."""
        caps = CapabilitySet.all()
        assert all(caps.get(cap) is True for cap in Capability)
        assert caps.granted() == ALL_CAPABILITIES

    def test_grant_sets_only_named(self) -> None:
        """grant() sets exactly the given names."""
        caps = CapabilitySet.grant("canSeeProjects", Capability.EDIT_PROJECTS)
        assert caps["canSeeProjects"] is True
        assert caps.get(Capability.EDIT_PROJECTS) is True
        assert caps.get(Capability.DELETE_PROJECTS) is False
        assert caps.granted() == (Capability.SEE_PROJECTS, Capability.EDIT_PROJECTS)

    def test_get_unknown_name_raises(self) -> None:
        """Asking for a name outside the catalog is an error, not False."""
        with pytest.raises(InvalidCapabilityName):
            CapabilitySet.all().get("canTeleport")

    def test_grant_unknown_name_raises(self) -> None:
        """Construction rejects unknown names."""
        with pytest.raises(InvalidCapabilityName):
            CapabilitySet.grant("canSeeProjects", "canTeleport")

    def test_with_all_false_still_validates_names(self) -> None:
        """with_all(False, names) rejects unknown names."""
        with pytest.raises(InvalidCapabilityName):
            CapabilitySet.with_all(False, ["canTeleport"])

    def test_with_all_subset(self) -> None:
        """with_all(True, names) grants only names."""
        caps = CapabilitySet.with_all(True, [Capability.SEE_TASKS])
        assert caps == CapabilitySet.grant(Capability.SEE_TASKS)
        assert CapabilitySet.with_all(True) == CapabilitySet.all()
        assert CapabilitySet.with_all() == CapabilitySet.none()

    def test_iteration_is_total(self) -> None:
        """Iteration and len() cover the whole catalog."""
        caps = CapabilitySet.grant(Capability.SEE_TASKS)
        assert len(caps) == len(Capability)
        assert list(caps) == list(ALL_CAPABILITIES)
        assert dict(caps.items())[Capability.SEE_TASKS] is True

    def test_to_dict_is_ordered_and_total(self) -> None:
        """to_dict() lists every wire name in catalog order."""
        data = CapabilitySet.grant(Capability.MANAGE_SYSTEM).to_dict()
        assert list(data) == [cap.value for cap in ALL_CAPABILITIES]
        assert data["canManageSystem"] is True
        assert sum(data.values()) == 1

    def test_sets_are_hashable_values(self) -> None:
        """Equal grants compare and hash equal."""
        a = CapabilitySet.grant("canSeeUsers", "canEditUsers")
        b = CapabilitySet.grant(Capability.EDIT_USERS, Capability.SEE_USERS)
        assert a == b
        assert len({a, b}) == 1


class TestCapabilitySetUnion:
    """Tests for the per-capability OR."""

    @pytest.mark.parametrize("a", SAMPLE_SETS)
    def test_union_idempotent(self, a: CapabilitySet) -> None:
        """a | a == a."""
        assert a.union(a) == a

    @pytest.mark.parametrize("a", SAMPLE_SETS)
    @pytest.mark.parametrize("b", SAMPLE_SETS)
    def test_union_commutative(self, a: CapabilitySet, b: CapabilitySet) -> None:
        """a | b == b | a."""
        assert a.union(b) == b.union(a)

    def test_union_associative(self) -> None:
        """(a | b) | c == a | (b | c)."""
        a, b, c = SAMPLE_SETS[2], SAMPLE_SETS[3], SAMPLE_SETS[4]
        assert (a | b) | c == a | (b | c)

    @pytest.mark.parametrize("a", SAMPLE_SETS)
    def test_none_is_identity(self, a: CapabilitySet) -> None:
        """Union with the empty set is a no-op."""
        assert a | CapabilitySet.none() == a

    def test_union_combines_grants(self) -> None:
        """Union grants whatever either side grants."""
        merged = CapabilitySet.grant("canSeeProjects") | CapabilitySet.grant("canSeeRaidLogs")
        assert merged.granted() == (Capability.SEE_PROJECTS, Capability.SEE_RAID_LOGS)

    def test_union_with_non_set(self) -> None:
        """| with a non-CapabilitySet is a TypeError."""
        with pytest.raises(TypeError):
            CapabilitySet.none() | {"canSeeProjects": True}

    def test_union_method_with_non_set(self) -> None:
        """union() called directly rejects a non-CapabilitySet."""
        with pytest.raises(TypeError):
            CapabilitySet.none().union({"canSeeProjects": True})

    def test_covers(self) -> None:
        """covers() is the superset check."""
        assert CapabilitySet.all().covers(SAMPLE_SETS[2])
        assert not SAMPLE_SETS[2].covers(SAMPLE_SETS[3])
        assert SAMPLE_SETS[2].covers(CapabilitySet.none())


class TestFromMapping:
    """Tests for loading stored {name: bool} records."""

    def test_missing_names_are_false(self) -> None:
        """A partial record grants only what it names."""
        caps = CapabilitySet.from_mapping({"canSeeProjects": True})
        assert caps == CapabilitySet.grant("canSeeProjects")

    def test_empty_or_null_record(self) -> None:
        """None and {} load as the empty set."""
        assert CapabilitySet.from_mapping(None) == CapabilitySet.none()
        assert CapabilitySet.from_mapping({}) == CapabilitySet.none()

    def test_unknown_names_dropped_with_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        """Retired names are ignored, not fatal."""
        with caplog.at_level(logging.WARNING):
            caps = CapabilitySet.from_mapping(
                {"canSeeProjects": True, "canSeeLegacyWidgets": True}, source="role r1"
            )
        assert caps == CapabilitySet.grant("canSeeProjects")
        assert "canSeeLegacyWidgets" in caplog.text
        assert "role r1" in caplog.text

    def test_only_literal_true_grants(self) -> None:
        """Truthy non-bool values do not grant."""
        caps = CapabilitySet.from_mapping(
            {"canSeeProjects": "true", "canSeeTasks": 1, "canSeeUsers": True, "canEditUsers": False}
        )
        assert caps == CapabilitySet.grant("canSeeUsers")

    def test_round_trip_through_dict(self) -> None:
        """to_dict() output loads back to the same set."""
        caps = CapabilitySet.grant("canSeeProjects", "canManageSystem")
        assert CapabilitySet.from_mapping(caps.to_dict()) == caps
