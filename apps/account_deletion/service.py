"""Scheduling and canceling voluntary account deletion."""

from datetime import datetime, timedelta
from typing import Optional
from pydantic import BaseModel
from framework.billing import BaseBillingProvider, get_billing_provider
from framework.config import settings
from framework.exceptions.handler import NotFoundError, ValidationError
from framework.logging.logger import get_logger
from framework.notification.notifier import notify_account_deletion_requested
from framework.repository.unit_of_work import UnitOfWork
from framework.timeutils import as_utc, utcnow
from apps.identity.models import User
from apps.identity.repository import TenantRepository, UserRepository

logger = get_logger("account_deletion")


class AccountDeletionStatus(BaseModel):
    user_id: int
    status: str  # none, scheduled, canceled, completed
    requested_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    canceled_at: Optional[datetime] = None


def deletion_status(user: User) -> AccountDeletionStatus:
    if user.account_deletion_completed_at is not None:
        status = "completed"
    elif user.account_deletion_deadline is not None:
        status = "scheduled"
    elif user.account_deletion_canceled_at is not None:
        status = "canceled"
    else:
        status = "none"
    return AccountDeletionStatus(
        user_id=user.id,
        status=status,
        requested_at=as_utc(user.account_deletion_requested_at),
        deadline=as_utc(user.account_deletion_deadline),
        canceled_at=as_utc(user.account_deletion_canceled_at),
    )


class AccountDeletionService:
    def __init__(self, uow: UnitOfWork, billing: Optional[BaseBillingProvider] = None):
        self.uow = uow
        self.billing = billing or get_billing_provider()

    @property
    def users(self) -> UserRepository:
        return self.uow.get_repository(UserRepository)

    @property
    def tenants(self) -> TenantRepository:
        return self.uow.get_repository(TenantRepository)

    async def _get_user(self, user_id: int) -> User:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def get_status(self, user_id: int) -> AccountDeletionStatus:
        return deletion_status(await self._get_user(user_id))

    async def request_deletion(self, user_id: int) -> AccountDeletionStatus:
        """
        Schedule deletion ACCOUNT_DELETION_DELAY_DAYS from now. Every owned tenant
        turns read-only until then. Calling again while scheduled changes nothing.
        """
        user = await self._get_user(user_id)
        if user.account_deletion_deadline is not None:
            return deletion_status(user)

        now = utcnow()
        deadline = now + timedelta(days=settings.ACCOUNT_DELETION_DELAY_DAYS)
        email = user.email
        await self.users.update_fields(
            user_id,
            account_deletion_requested_at=now,
            account_deletion_deadline=deadline,
            account_deletion_canceled_at=None,
        )

        subscriptions = []
        for tenant_id in await self.tenants.list_ids_by_owner(user_id):
            tenant = await self.tenants.get_by_id(tenant_id)
            if tenant.subscription_id:
                subscriptions.append((tenant_id, tenant.subscription_id))
            await self.tenants.update_fields(
                tenant_id,
                account_deletion_requested_at=now,
                account_deletion_deadline=deadline,
                account_deletion_canceled_at=None,
            )
        await self.uow.commit()
        logger.info(f"Account deletion scheduled | user_id={user_id} | deadline={deadline.isoformat()}")

        for tenant_id, subscription_id in subscriptions:
            try:
                await self.billing.revoke_subscription(subscription_id)
            except Exception as e:
                logger.warning(
                    f"Subscription revoke failed | tenant_id={tenant_id} | "
                    f"subscription_id={subscription_id} | error={e!r}"
                )

        if await notify_account_deletion_requested(email, deadline, user_id=user_id):
            await self.users.update_fields(user_id, account_deletion_notice_sent_at=utcnow())
            await self.uow.commit()

        return await self.get_status(user_id)

    async def cancel_deletion(self, user_id: int) -> AccountDeletionStatus:
        user = await self._get_user(user_id)
        if user.account_deletion_completed_at is not None:
            raise ValidationError("Account deletion already completed")
        if user.account_deletion_deadline is None:
            raise ValidationError("Account deletion is not scheduled")

        now = utcnow()
        cleared = dict(
            account_deletion_requested_at=None,
            account_deletion_deadline=None,
            account_deletion_canceled_at=now,
        )
        await self.users.update_fields(user_id, **cleared)
        for tenant_id in await self.tenants.list_ids_by_owner(user_id):
            await self.tenants.update_fields(tenant_id, **cleared)
        await self.uow.commit()
        logger.info(f"Account deletion canceled | user_id={user_id}")
        return await self.get_status(user_id)
