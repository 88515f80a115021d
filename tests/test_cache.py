"""Resolution cache and administration service tests."""

from __future__ import annotations

import asyncio

import pytest

from permission_engine.core.errors import RecordNotFound, RoleInUseError, StoreUnavailable
from permission_engine.features.capabilities import CapabilitySet
from permission_engine.features.permissions.cache import CachedResolver, ResolutionCache
from permission_engine.features.permissions.resolver import PermissionResolver
from permission_engine.features.permissions.service import PermissionService
from permission_engine.features.permissions.stores import in_memory_stores


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FlakyGroupStore:
    """Group store whose get_group fails while `failing` is set."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.failing = False

    async def get_group(self, group_id: str):
        if self.failing:
            raise StoreUnavailable("groups", "get_group", "timeout")
        return await self.inner.get_group(group_id)


class GatedOverrideStore:
    """Override store whose reads pause until `release` is set."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.read_done = asyncio.Event()
        self.release = asyncio.Event()

    async def get_override(self, user_id: str):
        override = await self.inner.get_override(user_id)
        self.read_done.set()
        await self.release.wait()
        return override


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResolutionCache:
    return ResolutionCache(ttl_seconds=30, max_entries=3, clock=clock)


class TestResolutionCache:
    """Tests for ResolutionCache."""

    def test_miss_then_hit(self, cache: ResolutionCache) -> None:
        """A stored value is returned until it expires."""
        caps = CapabilitySet.grant("canSeeUsers")
        assert cache.get("u1") is None
        cache.put("u1", caps)
        assert cache.get("u1") == caps
        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5

    def test_entries_expire(self, cache: ResolutionCache, clock: FakeClock) -> None:
        """Entries older than the TTL are misses."""
        cache.put("u1", CapabilitySet.all())
        clock.now = 30
        assert cache.get("u1") is None
        assert cache.stats().entries == 0

    def test_invalidate_one_user(self, cache: ResolutionCache) -> None:
        """invalidate() drops only that user."""
        cache.put("u1", CapabilitySet.all())
        cache.put("u2", CapabilitySet.all())
        cache.invalidate("u1")
        assert cache.get("u1") is None
        assert cache.get("u2") is not None

    def test_invalidate_all(self, cache: ResolutionCache) -> None:
        """invalidate_all() empties the cache."""
        cache.put("u1", CapabilitySet.all())
        cache.put("u2", CapabilitySet.none())
        cache.invalidate_all()
        assert cache.stats().entries == 0
        assert cache.stats().invalidations == 1

    def test_evicts_when_full(self, cache: ResolutionCache, clock: FakeClock) -> None:
        """The entry closest to expiry is evicted first."""
        for i, user_id in enumerate(["u1", "u2", "u3"]):
            clock.now = i
            cache.put(user_id, CapabilitySet.none())
        clock.now = 3
        cache.put("u4", CapabilitySet.none())
        assert cache.stats().entries == 3
        assert cache.get("u1") is None
        assert cache.get("u4") is not None

    def test_stale_put_discarded(self, cache: ResolutionCache) -> None:
        """A value resolved before an invalidation is not stored."""
        generation = cache.generation("u1")
        cache.invalidate("u1")
        assert cache.put("u1", CapabilitySet.all(), generation) is False
        assert cache.get("u1") is None

        generation = cache.generation("u2")
        cache.invalidate_all()
        assert cache.put("u2", CapabilitySet.all(), generation) is False
        assert cache.put("u2", CapabilitySet.all(), cache.generation("u2")) is True

    def test_rejects_bad_settings(self) -> None:
        """TTL and size must be positive."""
        with pytest.raises(ValueError):
            ResolutionCache(ttl_seconds=0)
        with pytest.raises(ValueError):
            ResolutionCache(max_entries=0)


class TestCachedResolver:
    """Tests for CachedResolver."""

    @pytest.mark.asyncio
    async def test_cached_value_survives_store_change(self, cache: ResolutionCache) -> None:
        """Without invalidation the memoized set is served."""
        roles, groups, memberships, overrides = in_memory_stores()
        resolver = CachedResolver(PermissionResolver(roles, groups, memberships, overrides), cache)
        assert await resolver.check("u1", "canSeeUsers") is False
        await overrides.set_override("u1", CapabilitySet.grant("canSeeUsers"))
        assert await resolver.check("u1", "canSeeUsers") is False
        cache.invalidate("u1")
        assert await resolver.check("u1", "canSeeUsers") is True

    @pytest.mark.asyncio
    async def test_degraded_result_not_cached(self, cache: ResolutionCache) -> None:
        """A resolution that skipped a failing group is not memoized."""
        roles, groups, memberships, overrides = in_memory_stores()
        group = await groups.create_group("Reviewers", CapabilitySet.grant("canSeeRaidLogs"))
        await memberships.add_membership("u1", group.id)
        flaky = FlakyGroupStore(groups)
        resolver = CachedResolver(PermissionResolver(roles, flaky, memberships, overrides), cache)

        flaky.failing = True
        assert await resolver.check("u1", "canSeeRaidLogs") is False
        assert cache.stats().entries == 0

        flaky.failing = False
        assert await resolver.check("u1", "canSeeRaidLogs") is True
        assert cache.stats().entries == 1

    @pytest.mark.asyncio
    async def test_mutation_during_resolve_not_cached(self, cache: ResolutionCache) -> None:
        """A resolve that read old state before a mutation does not cache it."""
        roles, groups, memberships, overrides = in_memory_stores()
        gated = GatedOverrideStore(overrides)
        service = PermissionService(roles, groups, memberships, overrides, cache=cache)
        resolver = CachedResolver(PermissionResolver(roles, groups, memberships, gated), cache)

        pending = asyncio.create_task(resolver.resolve("u1"))
        await gated.read_done.wait()
        await service.set_override("u1", CapabilitySet.grant("canSeeUsers"))
        gated.release.set()

        assert await pending == CapabilitySet.none()
        assert cache.stats().entries == 0
        assert await resolver.check("u1", "canSeeUsers") is True

    @pytest.mark.asyncio
    async def test_role_edit_during_resolve_not_cached(self, cache: ResolutionCache) -> None:
        """invalidate_all() during a resolve also prevents caching."""
        roles, groups, memberships, overrides = in_memory_stores()
        gated = GatedOverrideStore(overrides)
        service = PermissionService(roles, groups, memberships, overrides, cache=cache)
        resolver = CachedResolver(PermissionResolver(roles, groups, memberships, gated), cache)
        role = await service.create_role("Editor", CapabilitySet.grant("canSeeProjects"))
        await service.assign_role("u1", role.id)

        pending = asyncio.create_task(resolver.resolve("u1"))
        await gated.read_done.wait()
        await service.update_role(role.id, is_active=False)
        gated.release.set()

        assert await pending == CapabilitySet.grant("canSeeProjects")
        assert await resolver.check("u1", "canSeeProjects") is False

    @pytest.mark.asyncio
    async def test_explain_is_always_fresh(self, cache: ResolutionCache) -> None:
        """explain() bypasses the cache."""
        roles, groups, memberships, overrides = in_memory_stores()
        resolver = CachedResolver(PermissionResolver(roles, groups, memberships, overrides), cache)
        await resolver.resolve("u1")
        await overrides.set_override("u1", CapabilitySet.grant("canSeeUsers"))
        summary = await resolver.explain("u1")
        assert summary.resolved == CapabilitySet.grant("canSeeUsers")


class TestPermissionService:
    """Mutations through PermissionService invalidate the cache."""

    @pytest.fixture
    def setup(self, cache: ResolutionCache):
        stores = in_memory_stores()
        service = PermissionService(*stores, cache=cache)
        resolver = CachedResolver(PermissionResolver(*stores), cache)
        return service, resolver

    @pytest.mark.asyncio
    async def test_override_change_visible(self, setup) -> None:
        """Setting and clearing an override takes effect immediately."""
        service, resolver = setup
        assert await resolver.check("u1", "canSeeUsers") is False
        await service.set_override("u1", CapabilitySet.grant("canSeeUsers"), actor_id="admin")
        assert await resolver.check("u1", "canSeeUsers") is True
        assert await service.clear_override("u1", actor_id="admin") is True
        assert await resolver.check("u1", "canSeeUsers") is False

    @pytest.mark.asyncio
    async def test_role_edit_visible_for_all_holders(self, setup) -> None:
        """Editing a role invalidates every cached user."""
        service, resolver = setup
        role = await service.create_role("Editor", CapabilitySet.grant("canSeeProjects"))
        await service.assign_role("u1", role.id)
        await service.assign_role("u2", role.id)
        assert await resolver.check("u1", "canEditProjects") is False
        assert await resolver.check("u2", "canEditProjects") is False

        await service.update_role(role.id, capabilities=CapabilitySet.grant("canSeeProjects", "canEditProjects"))

        assert await resolver.check("u1", "canEditProjects") is True
        assert await resolver.check("u2", "canEditProjects") is True

    @pytest.mark.asyncio
    async def test_group_deactivation_visible(self, setup) -> None:
        """Deactivating a group revokes its grant for cached members."""
        service, resolver = setup
        group = await service.create_group("Reviewers", CapabilitySet.grant("canSeeRaidLogs"))
        await service.add_member(group.id, "u1")
        assert await resolver.check("u1", "canSeeRaidLogs") is True
        await service.update_group(group.id, is_active=False)
        assert await resolver.check("u1", "canSeeRaidLogs") is False
        assert len(await service.list_members(group.id)) == 1

    @pytest.mark.asyncio
    async def test_membership_removal_visible(self, setup) -> None:
        """Removing a member revokes the group grant."""
        service, resolver = setup
        group = await service.create_group("Reviewers", CapabilitySet.grant("canSeeRaidLogs"))
        await service.add_member(group.id, "u1")
        assert await resolver.check("u1", "canSeeRaidLogs") is True
        assert await service.remove_member(group.id, "u1") is True
        assert await resolver.check("u1", "canSeeRaidLogs") is False

    @pytest.mark.asyncio
    async def test_add_member_to_missing_group(self, setup) -> None:
        """Adding to an unknown group raises RecordNotFound."""
        service, _ = setup
        with pytest.raises(RecordNotFound):
            await service.add_member("nope", "u1")

    @pytest.mark.asyncio
    async def test_delete_role_in_use(self, setup) -> None:
        """The service surfaces RoleInUseError from the store."""
        service, _ = setup
        role = await service.create_role("Editor", CapabilitySet.none())
        await service.assign_role("u1", role.id)
        with pytest.raises(RoleInUseError):
            await service.delete_role(role.id)

    @pytest.mark.asyncio
    async def test_mutations_are_audited(self, setup, caplog: pytest.LogCaptureFixture) -> None:
        """Each mutation writes an audit line naming the actor."""
        service, _ = setup
        with caplog.at_level("INFO"):
            await service.set_override("u1", CapabilitySet.grant("canSeeUsers"), actor_id="admin-7")
        assert "Audit: set_override user u1 by admin-7" in caplog.text

    @pytest.mark.asyncio
    async def test_works_without_cache(self) -> None:
        """The cache is optional."""
        stores = in_memory_stores()
        service = PermissionService(*stores)
        await service.set_override("u1", CapabilitySet.grant("canSeeUsers"))
        assert await PermissionResolver(*stores).check("u1", "canSeeUsers") is True
