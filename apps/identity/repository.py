"""Identity module repository implementations."""

from datetime import datetime
from typing import Optional, List
from sqlmodel import select, update, delete, func
from framework.repository.base import BaseRepository
from .models import Tenant, User, UserSession


class TenantRepository(BaseRepository[Tenant]):
    """Tenant repository."""

    def __init__(self, session):
        super().__init__(session, Tenant)

    async def list_ids_by_owner(self, owner_id: int) -> List[int]:
        statement = select(Tenant.id).where(Tenant.owner_id == owner_id).order_by(Tenant.id)
        result = await self.session.exec(statement)
        return list(result.all())

    async def count_with_grace_deadline(self) -> int:
        result = await self.session.exec(
            select(func.count(Tenant.id)).where(Tenant.grace_deadline.is_not(None))
        )
        return result.one()

    async def list_ids_with_grace_deadline(self, after_id: int = 0, limit: int = 100) -> List[int]:
        """One page of tenants in grace or retention, keyed by id."""
        statement = (
            select(Tenant.id)
            .where(Tenant.grace_deadline.is_not(None), Tenant.id > after_id)
            .order_by(Tenant.id)
            .limit(limit)
        )
        result = await self.session.exec(statement)
        return list(result.all())

    async def update_fields(self, tenant_id: int, **values) -> None:
        """Column update that does not need a loaded instance (safe after a rollback)."""
        await self.session.exec(update(Tenant).where(Tenant.id == tenant_id).values(**values))

    async def set_grace_deadline(self, tenant_id: int, deadline: Optional[datetime]) -> None:
        await self.update_fields(tenant_id, grace_deadline=deadline)

    async def set_usage_counters(self, tenant_id: int, storage_bytes: int, model_count: int) -> None:
        await self.update_fields(
            tenant_id, current_storage=storage_bytes, current_model_count=model_count
        )

    async def decrement_usage_counters(self, tenant_id: int, storage_bytes: int, model_count: int) -> None:
        tenant = await self.get_by_id(tenant_id)
        if tenant is None:
            return
        tenant.current_storage = max(0, (tenant.current_storage or 0) - storage_bytes)
        tenant.current_model_count = max(0, (tenant.current_model_count or 0) - model_count)
        self.session.add(tenant)

    async def increment_usage_counters(self, tenant_id: int, storage_bytes: int, model_count: int) -> None:
        tenant = await self.get_by_id(tenant_id)
        if tenant is None:
            return
        tenant.current_storage = (tenant.current_storage or 0) + storage_bytes
        tenant.current_model_count = (tenant.current_model_count or 0) + model_count
        self.session.add(tenant)

    async def delete_tenant(self, tenant_id: int) -> None:
        await self.session.exec(delete(Tenant).where(Tenant.id == tenant_id))


class UserRepository(BaseRepository[User]):
    """User repository."""

    def __init__(self, session):
        super().__init__(session, User)

    async def list_due_for_deletion(self, now: datetime, limit: Optional[int] = None) -> List[int]:
        """Users whose deletion deadline passed and that were neither canceled nor completed."""
        statement = (
            select(User.id)
            .where(
                User.account_deletion_deadline.is_not(None),
                User.account_deletion_deadline <= now,
                User.account_deletion_canceled_at.is_(None),
                User.account_deletion_completed_at.is_(None),
            )
            .order_by(User.account_deletion_deadline, User.id)
        )
        if limit is not None:
            statement = statement.limit(limit)
        result = await self.session.exec(statement)
        return list(result.all())

    async def update_fields(self, user_id: int, **values) -> None:
        await self.session.exec(update(User).where(User.id == user_id).values(**values))

    async def delete_user(self, user_id: int) -> None:
        await self.session.exec(delete(UserSession).where(UserSession.user_id == user_id))
        await self.session.exec(delete(User).where(User.id == user_id))


class UserSessionRepository(BaseRepository[UserSession]):
    def __init__(self, session):
        super().__init__(session, UserSession)

    async def clear_active_tenant(self, tenant_id: int) -> None:
        await self.session.exec(
            update(UserSession)
            .where(UserSession.active_tenant_id == tenant_id)
            .values(active_tenant_id=None)
        )
