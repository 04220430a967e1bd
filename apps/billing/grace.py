"""
Grace period state machine and write guard.

One persisted timestamp drives two windows: writes are blocked from the moment
grace starts, and once `grace_deadline + RETENTION_PERIOD_DAYS` passes the
retention sweep starts evicting the oldest models. The account deletion
deadline is a separate timestamp and always wins the write-guard message.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from pydantic import BaseModel
from framework.config import settings
from framework.exceptions.handler import NotFoundError, WriteBlockedError
from framework.logging.logger import get_logger
from framework.notification.notifier import format_date, notify_grace_period_started
from framework.repository.unit_of_work import UnitOfWork
from framework.timeutils import as_utc, utcnow
from apps.identity.models import Tenant
from apps.identity.repository import TenantRepository, UserRepository
from .tiers import TenantLimits, normalize_tier, get_tier_config
from .usage import UsageSnapshot, compute_usage, is_over_limits

logger = get_logger("grace_period")


class GraceState(str, Enum):
    COMPLIANT = "COMPLIANT"
    IN_GRACE = "IN_GRACE"
    EVICTED = "EVICTED"


class GracePhase(str, Enum):
    NONE = "none"
    GRACE = "grace"
    RETENTION = "retention"
    EXPIRED = "expired"


def retention_deadline_for(grace_deadline: Optional[datetime]) -> Optional[datetime]:
    if grace_deadline is None:
        return None
    return as_utc(grace_deadline) + timedelta(days=settings.RETENTION_PERIOD_DAYS)


def grace_phase(grace_deadline: Optional[datetime], now: Optional[datetime] = None) -> GracePhase:
    if grace_deadline is None:
        return GracePhase.NONE
    now = now or utcnow()
    grace_deadline = as_utc(grace_deadline)
    if now < grace_deadline:
        return GracePhase.GRACE
    if now <= retention_deadline_for(grace_deadline):
        return GracePhase.RETENTION
    return GracePhase.EXPIRED


def grace_state(grace_deadline: Optional[datetime], now: Optional[datetime] = None) -> GraceState:
    phase = grace_phase(grace_deadline, now)
    if phase == GracePhase.NONE:
        return GraceState.COMPLIANT
    if phase == GracePhase.EXPIRED:
        return GraceState.EVICTED
    return GraceState.IN_GRACE


def assert_write_allowed(
    grace_deadline: Optional[datetime],
    account_deletion_deadline: Optional[datetime],
    action: str = "write",
) -> None:
    """
    Raise WriteBlockedError when a mutation is not allowed.

    action="write" is blocked by either deadline. action="delete" stays open
    during grace so the tenant can remove models to get back under its limits;
    only a pending account deletion blocks it. Reads never call this.
    """
    if account_deletion_deadline is not None:
        raise WriteBlockedError(
            f"Your account is scheduled for deletion on {format_date(as_utc(account_deletion_deadline))}. "
            "Cancel deletion to restore full access.",
            reason="account_deletion",
        )
    if grace_deadline is not None and action != "delete":
        raise WriteBlockedError(
            f"Your account is in read-only mode until {format_date(retention_deadline_for(grace_deadline))}. "
            "Upgrade to restore full access.",
            reason="grace_period",
        )


class GraceStatus(BaseModel):
    tenant_id: int
    tier: str
    state: GraceState
    phase: GracePhase
    grace_deadline: Optional[datetime] = None
    retention_deadline: Optional[datetime] = None
    usage: UsageSnapshot
    limits: TenantLimits
    over_limits: bool
    # "entered_grace", "cleared" or None when this check changed nothing
    transition: Optional[str] = None


class GracePeriodService:
    """Drives COMPLIANT <-> IN_GRACE from fresh usage. Eviction belongs to the retention sweep."""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def _get_tenant(self, tenant_id: int) -> Tenant:
        tenant = await self.uow.get_repository(TenantRepository).get_by_id(tenant_id)
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        return tenant

    def _status(self, tenant_id: int, tier: str, grace_deadline, usage, limits, transition=None) -> GraceStatus:
        grace_deadline = as_utc(grace_deadline)
        return GraceStatus(
            tenant_id=tenant_id,
            tier=tier,
            state=grace_state(grace_deadline),
            phase=grace_phase(grace_deadline),
            grace_deadline=grace_deadline,
            retention_deadline=retention_deadline_for(grace_deadline),
            usage=usage,
            limits=limits,
            over_limits=is_over_limits(usage, limits),
            transition=transition,
        )

    async def get_status(self, tenant_id: int) -> GraceStatus:
        """Read-only view for the billing page."""
        tenant = await self._get_tenant(tenant_id)
        limits = TenantLimits.for_tenant(tenant)
        usage = await compute_usage(self.uow, tenant_id)
        return self._status(tenant_id, limits.tier, tenant.grace_deadline, usage, limits)

    async def check_usage(self, tenant_id: int) -> GraceStatus:
        """
        Start grace when over limits without a deadline; clear the deadline as soon
        as the tenant is within limits, however much grace time is left. Commits.
        """
        tenant = await self._get_tenant(tenant_id)
        tenant_name = tenant.name
        owner_id = tenant.owner_id
        grace_deadline = as_utc(tenant.grace_deadline)
        limits = TenantLimits.for_tenant(tenant)
        usage = await compute_usage(self.uow, tenant_id)
        tenants = self.uow.get_repository(TenantRepository)

        transition = None
        if is_over_limits(usage, limits):
            if grace_deadline is None:
                grace_deadline = utcnow() + timedelta(days=settings.GRACE_PERIOD_DAYS)
                await tenants.set_grace_deadline(tenant_id, grace_deadline)
                transition = "entered_grace"
        elif grace_deadline is not None:
            grace_deadline = None
            await tenants.set_grace_deadline(tenant_id, None)
            transition = "cleared"

        await tenants.set_usage_counters(tenant_id, usage.storage_bytes, usage.model_count)
        await self.uow.commit()

        if transition == "entered_grace":
            logger.info(
                f"Tenant {tenant_id} entered grace | deadline={grace_deadline.isoformat()} | "
                f"models={usage.model_count}/{limits.model_count} | bytes={usage.storage_bytes}/{limits.storage_bytes}"
            )
            owner = await self.uow.get_repository(UserRepository).get_by_id(owner_id)
            await notify_grace_period_started(
                owner.email if owner else None,
                tenant_name,
                grace_deadline,
                retention_deadline_for(grace_deadline),
                tenant_id=tenant_id,
            )
        elif transition == "cleared":
            logger.info(f"Tenant {tenant_id} back within limits, grace cleared")

        return self._status(tenant_id, limits.tier, grace_deadline, usage, limits, transition)

    async def apply_tier_change(self, tenant_id: int, tier: str) -> GraceStatus:
        """Switch the tenant to a tier's limits, then re-evaluate usage (post-downgrade trigger)."""
        await self._get_tenant(tenant_id)
        tier = normalize_tier(tier)
        config = get_tier_config(tier)
        await self.uow.get_repository(TenantRepository).update_fields(
            tenant_id,
            subscription_tier=tier,
            storage_limit=config.storage_limit,
            model_count_limit=config.model_count_limit,
            member_limit=config.max_members,
        )
        await self.uow.commit()
        logger.info(f"Tenant {tenant_id} moved to tier {tier}")
        return await self.check_usage(tenant_id)
