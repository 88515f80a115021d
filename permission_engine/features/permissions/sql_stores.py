"""
SQLAlchemy-backed stores.

Each store holds an async_sessionmaker and opens one short session per
operation, so a single instance can be shared by every request. Backend
failures (any SQLAlchemyError) surface as StoreUnavailable; missing records
read as None.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from permission_engine.core.errors import RecordNotFound, RoleInUseError, StoreUnavailable
from permission_engine.features.capabilities import CapabilitySet
from permission_engine.features.permissions.entities import (
    IndividualOverride,
    Membership,
    Role,
    UserGroup,
)
from permission_engine.features.permissions.models import (
    MembershipRecord,
    OverrideRecord,
    RoleRecord,
    UserGroupRecord,
)
from permission_engine.features.users.models import User
from permission_engine.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Record -> entity conversion
# ============================================================================

def _to_role(record: RoleRecord) -> Role:
    return Role(
        id=record.id,
        name=record.name,
        capabilities=CapabilitySet.from_mapping(record.permissions, source=f"role {record.id}"),
        description=record.description,
        is_active=record.is_active,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_group(record: UserGroupRecord) -> UserGroup:
    return UserGroup(
        id=record.id,
        name=record.name,
        capabilities=CapabilitySet.from_mapping(record.permissions, source=f"group {record.id}"),
        description=record.description,
        is_active=record.is_active,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_membership(record: MembershipRecord) -> Membership:
    return Membership(
        user_id=record.user_id,
        group_id=record.group_id,
        assigned_at=record.assigned_at,
        assigned_by_id=record.assigned_by_id,
    )


def _to_override(record: OverrideRecord) -> IndividualOverride:
    return IndividualOverride(
        id=record.id,
        user_id=record.user_id,
        capabilities=CapabilitySet.from_mapping(record.permissions, source=f"override for user {record.user_id}"),
        assigned_by_id=record.assigned_by_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class _SqlStore:
    store_name = "store"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            log.error(f"{self.store_name}.{operation} failed: {e}")
            raise StoreUnavailable(self.store_name, operation, str(e)) from e


# ============================================================================
# Roles
# ============================================================================

class SqlRoleStore(_SqlStore):
    """Roles table plus the users.role_id reference."""
    store_name = "roles"

    async def get_role(self, role_id: str) -> Optional[Role]:
        async with self._session("get_role") as db:
            record = await db.get(RoleRecord, role_id)
            return _to_role(record) if record is not None else None

    async def get_role_for_user(self, user_id: str) -> Optional[Role]:
        async with self._session("get_role_for_user") as db:
            stmt = (
                select(RoleRecord)
                .join(User, User.role_id == RoleRecord.id)
                .where(User.id == user_id)
            )
            result = await db.execute(stmt)
            record = result.scalars().first()
            return _to_role(record) if record is not None else None

    async def list_roles(self) -> list[Role]:
        async with self._session("list_roles") as db:
            result = await db.execute(select(RoleRecord).order_by(RoleRecord.name))
            return [_to_role(record) for record in result.scalars().all()]

    async def create_role(
        self,
        name: str,
        capabilities: CapabilitySet,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> Role:
        async with self._session("create_role") as db:
            record = RoleRecord(
                name=name,
                description=description,
                permissions=capabilities.to_dict(),
                is_active=is_active,
            )
            db.add(record)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ValueError(f"Role with name '{name}' already exists.")
            await db.refresh(record)
            return _to_role(record)

    async def update_role(
        self,
        role_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        capabilities: Optional[CapabilitySet] = None,
        is_active: Optional[bool] = None,
    ) -> Role:
        async with self._session("update_role") as db:
            record = await db.get(RoleRecord, role_id)
            if record is None:
                raise RecordNotFound("Role", role_id)
            if name is not None:
                record.name = name
            if description is not None:
                record.description = description
            if capabilities is not None:
                record.permissions = capabilities.to_dict()
            if is_active is not None:
                record.is_active = is_active
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ValueError(f"Role with name '{name}' already exists.")
            await db.refresh(record)
            return _to_role(record)

    async def delete_role(self, role_id: str) -> None:
        async with self._session("delete_role") as db:
            record = await db.get(RoleRecord, role_id)
            if record is None:
                raise RecordNotFound("Role", role_id)
            result = await db.execute(
                select(func.count()).select_from(User).where(User.role_id == role_id)
            )
            users = result.scalar_one()
            if users:
                raise RoleInUseError(role_id, users)
            await db.delete(record)
            await db.commit()

    async def assign_role_to_user(self, user_id: str, role_id: Optional[str]) -> None:
        async with self._session("assign_role_to_user") as db:
            user = await db.get(User, user_id)
            if user is None:
                raise RecordNotFound("User", user_id)
            if role_id is not None and await db.get(RoleRecord, role_id) is None:
                raise RecordNotFound("Role", role_id)
            user.role_id = role_id
            await db.commit()


# ============================================================================
# Groups
# ============================================================================

class SqlGroupStore(_SqlStore):
    store_name = "groups"

    async def get_group(self, group_id: str) -> Optional[UserGroup]:
        async with self._session("get_group") as db:
            record = await db.get(UserGroupRecord, group_id)
            return _to_group(record) if record is not None else None

    async def list_groups(self) -> list[UserGroup]:
        async with self._session("list_groups") as db:
            result = await db.execute(select(UserGroupRecord).order_by(UserGroupRecord.name))
            return [_to_group(record) for record in result.scalars().all()]

    async def create_group(
        self,
        name: str,
        capabilities: CapabilitySet,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> UserGroup:
        async with self._session("create_group") as db:
            record = UserGroupRecord(
                name=name,
                description=description,
                permissions=capabilities.to_dict(),
                is_active=is_active,
            )
            db.add(record)
            await db.commit()
            await db.refresh(record)
            return _to_group(record)

    async def update_group(
        self,
        group_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        capabilities: Optional[CapabilitySet] = None,
        is_active: Optional[bool] = None,
    ) -> UserGroup:
        async with self._session("update_group") as db:
            record = await db.get(UserGroupRecord, group_id)
            if record is None:
                raise RecordNotFound("Group", group_id)
            if name is not None:
                record.name = name
            if description is not None:
                record.description = description
            if capabilities is not None:
                record.permissions = capabilities.to_dict()
            if is_active is not None:
                record.is_active = is_active
            await db.commit()
            await db.refresh(record)
            return _to_group(record)

    async def delete_group(self, group_id: str) -> None:
        async with self._session("delete_group") as db:
            record = await db.get(UserGroupRecord, group_id)
            if record is None:
                raise RecordNotFound("Group", group_id)
            # SQLite does not enforce the cascade unless foreign keys are switched on
            await db.execute(delete(MembershipRecord).where(MembershipRecord.group_id == group_id))
            await db.delete(record)
            await db.commit()


# ============================================================================
# Memberships
# ============================================================================

class SqlMembershipIndex(_SqlStore):
    store_name = "memberships"

    async def get_memberships_for_user(self, user_id: str) -> list[Membership]:
        async with self._session("get_memberships_for_user") as db:
            stmt = (
                select(MembershipRecord)
                .where(MembershipRecord.user_id == user_id)
                .order_by(MembershipRecord.assigned_at, MembershipRecord.id)
            )
            result = await db.execute(stmt)
            return [_to_membership(record) for record in result.scalars().all()]

    async def get_group_members(self, group_id: str) -> list[Membership]:
        async with self._session("get_group_members") as db:
            stmt = (
                select(MembershipRecord)
                .where(MembershipRecord.group_id == group_id)
                .order_by(MembershipRecord.assigned_at, MembershipRecord.id)
            )
            result = await db.execute(stmt)
            return [_to_membership(record) for record in result.scalars().all()]

    async def add_membership(
        self, user_id: str, group_id: str, assigned_by_id: Optional[str] = None
    ) -> Membership:
        async with self._session("add_membership") as db:
            if await db.get(User, user_id) is None:
                raise RecordNotFound("User", user_id)
            if await db.get(UserGroupRecord, group_id) is None:
                raise RecordNotFound("Group", group_id)
            existing = await self._find(db, user_id, group_id)
            if existing is not None:
                return _to_membership(existing)
            record = MembershipRecord(user_id=user_id, group_id=group_id, assigned_by_id=assigned_by_id)
            db.add(record)
            await db.commit()
            await db.refresh(record)
            return _to_membership(record)

    async def remove_membership(self, user_id: str, group_id: str) -> bool:
        async with self._session("remove_membership") as db:
            existing = await self._find(db, user_id, group_id)
            if existing is None:
                return False
            await db.delete(existing)
            await db.commit()
            return True

    @staticmethod
    async def _find(db: AsyncSession, user_id: str, group_id: str) -> Optional[MembershipRecord]:
        result = await db.execute(
            select(MembershipRecord).where(
                MembershipRecord.user_id == user_id,
                MembershipRecord.group_id == group_id,
            )
        )
        return result.scalars().first()


# ============================================================================
# Individual overrides
# ============================================================================

class SqlOverrideStore(_SqlStore):
    store_name = "overrides"

    async def get_override(self, user_id: str) -> Optional[IndividualOverride]:
        async with self._session("get_override") as db:
            record = await self._find(db, user_id)
            return _to_override(record) if record is not None else None

    async def set_override(
        self,
        user_id: str,
        capabilities: CapabilitySet,
        assigned_by_id: Optional[str] = None,
    ) -> IndividualOverride:
        async with self._session("set_override") as db:
            if await db.get(User, user_id) is None:
                raise RecordNotFound("User", user_id)
            record = await self._find(db, user_id)
            if record is None:
                record = OverrideRecord(user_id=user_id)
                db.add(record)
            # Replaces the whole set
            record.permissions = capabilities.to_dict()
            record.assigned_by_id = assigned_by_id
            await db.commit()
            await db.refresh(record)
            return _to_override(record)

    async def clear_override(self, user_id: str) -> bool:
        async with self._session("clear_override") as db:
            record = await self._find(db, user_id)
            if record is None:
                return False
            await db.delete(record)
            await db.commit()
            return True

    @staticmethod
    async def _find(db: AsyncSession, user_id: str) -> Optional[OverrideRecord]:
        result = await db.execute(select(OverrideRecord).where(OverrideRecord.user_id == user_id))
        return result.scalars().first()


def sql_stores(
    session_factory: async_sessionmaker[AsyncSession],
) -> tuple[SqlRoleStore, SqlGroupStore, SqlMembershipIndex, SqlOverrideStore]:
    """Build the four SQL stores over one session factory."""
    return (
        SqlRoleStore(session_factory),
        SqlGroupStore(session_factory),
        SqlMembershipIndex(session_factory),
        SqlOverrideStore(session_factory),
    )
