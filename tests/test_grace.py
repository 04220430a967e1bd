"""Grace period state machine and write guard tests."""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock
from framework.config import settings
from framework.exceptions.handler import WriteBlockedError
from framework.timeutils import as_utc, utcnow
from apps.billing.grace import (
    GracePeriodService,
    GracePhase,
    GraceState,
    assert_write_allowed,
    grace_phase,
    grace_state,
    retention_deadline_for,
)
from apps.identity.models import Tenant
from helpers import MB, create_model, create_tenant, utc


class TestWriteGuard:

    def test_no_deadlines_allows_everything(self):
        assert_write_allowed(None, None, action="write")
        assert_write_allowed(None, None, action="delete")

    def test_grace_blocks_writes_with_retention_date(self):
        grace = utc(2026, 3, 1)
        with pytest.raises(WriteBlockedError) as exc_info:
            assert_write_allowed(grace, None)

        expected = retention_deadline_for(grace)
        assert exc_info.value.reason == "grace_period"
        assert exc_info.value.code == 403
        assert exc_info.value.message == (
            f"Your account is in read-only mode until {expected.strftime('%B')} {expected.day}, {expected.year}. "
            "Upgrade to restore full access."
        )

    def test_grace_allows_self_remedy_delete(self):
        assert_write_allowed(utc(2026, 3, 1), None, action="delete")

    def test_account_deletion_message_wins(self):
        with pytest.raises(WriteBlockedError) as exc_info:
            assert_write_allowed(utc(2026, 3, 1), utc(2026, 3, 5))

        assert exc_info.value.reason == "account_deletion"
        assert exc_info.value.message == (
            "Your account is scheduled for deletion on March 5, 2026. Cancel deletion to restore full access."
        )

    def test_account_deletion_blocks_deletes(self):
        with pytest.raises(WriteBlockedError):
            assert_write_allowed(None, utc(2026, 3, 5), action="delete")

    def test_naive_database_timestamps_accepted(self):
        with pytest.raises(WriteBlockedError, match="March 5, 2026"):
            assert_write_allowed(None, utc(2026, 3, 5).replace(tzinfo=None))


class TestPhases:

    def test_phase_boundaries(self):
        grace = utc(2026, 1, 10)
        retention = grace + timedelta(days=settings.RETENTION_PERIOD_DAYS)

        assert grace_phase(None) == GracePhase.NONE
        assert grace_phase(grace, now=grace - timedelta(seconds=1)) == GracePhase.GRACE
        assert grace_phase(grace, now=grace) == GracePhase.RETENTION
        assert grace_phase(grace, now=retention) == GracePhase.RETENTION
        assert grace_phase(grace, now=retention + timedelta(seconds=1)) == GracePhase.EXPIRED

    def test_states(self):
        grace = utc(2026, 1, 10)
        assert grace_state(None) == GraceState.COMPLIANT
        assert grace_state(grace, now=utc(2026, 1, 9)) == GraceState.IN_GRACE
        assert grace_state(grace, now=utc(2026, 6, 1)) == GraceState.EVICTED


class TestCheckUsage:

    @pytest.mark.asyncio
    async def test_over_limit_enters_grace_and_notifies_once(self, async_session, uow, sample_tenant, monkeypatch):
        notify = AsyncMock(return_value=True)
        monkeypatch.setattr("apps.billing.grace.notify_grace_period_started", notify)
        for index in range(11):
            await create_model(async_session, sample_tenant, f"M{index}", [MB])
        service = GracePeriodService(uow)

        before = utcnow()
        status = await service.check_usage(sample_tenant)

        assert status.transition == "entered_grace"
        assert status.state == GraceState.IN_GRACE
        assert status.phase == GracePhase.GRACE
        expected = before + timedelta(days=settings.GRACE_PERIOD_DAYS)
        assert abs((status.grace_deadline - expected).total_seconds()) < 60
        notify.assert_awaited_once()
        assert notify.await_args.args[0] == "owner@example.com"

        again = await service.check_usage(sample_tenant)

        assert again.transition is None
        assert again.grace_deadline == status.grace_deadline
        notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_back_within_limits_clears_immediately(self, async_session, uow, sample_tenant):
        tenant = await async_session.get(Tenant, sample_tenant)
        tenant.grace_deadline = utcnow() + timedelta(days=6)
        async_session.add(tenant)
        await async_session.commit()
        await create_model(async_session, sample_tenant, "Only", [MB])

        status = await GracePeriodService(uow).check_usage(sample_tenant)

        assert status.transition == "cleared"
        assert status.state == GraceState.COMPLIANT
        tenant = await async_session.get(Tenant, sample_tenant)
        assert tenant.grace_deadline is None
        assert tenant.current_model_count == 1

    @pytest.mark.asyncio
    async def test_compliant_tenant_stays_compliant(self, async_session, uow, sample_tenant, monkeypatch):
        notify = AsyncMock(return_value=True)
        monkeypatch.setattr("apps.billing.grace.notify_grace_period_started", notify)
        await create_model(async_session, sample_tenant, "Only", [MB])

        status = await GracePeriodService(uow).check_usage(sample_tenant)

        assert status.transition is None
        assert status.grace_deadline is None
        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_undo_grace(self, async_session, uow, sample_tenant, monkeypatch):
        monkeypatch.setattr("apps.billing.grace.notify_grace_period_started", AsyncMock(return_value=False))
        tenant_id = await create_tenant(async_session, owner_id=1, name="Tiny", storage_limit=MB)
        await create_model(async_session, tenant_id, "Big", [2 * MB])

        status = await GracePeriodService(uow).check_usage(tenant_id)

        assert status.transition == "entered_grace"
        tenant = await async_session.get(Tenant, tenant_id)
        assert tenant.grace_deadline is not None


class TestTierChange:

    @pytest.mark.asyncio
    async def test_downgrade_starts_grace_and_upgrade_clears_it(self, async_session, uow, sample_user, monkeypatch):
        monkeypatch.setattr("apps.billing.grace.notify_grace_period_started", AsyncMock(return_value=True))
        tenant_id = await create_tenant(async_session, owner_id=sample_user, name="Studio", subscription_tier="pro")
        for index in range(12):
            await create_model(async_session, tenant_id, f"M{index}", [MB])
        service = GracePeriodService(uow)

        downgraded = await service.apply_tier_change(tenant_id, "free")

        assert downgraded.tier == "free"
        assert downgraded.limits.model_count == 10
        assert downgraded.transition == "entered_grace"

        upgraded = await service.apply_tier_change(tenant_id, "basic")

        assert upgraded.transition == "cleared"
        assert upgraded.grace_deadline is None

    @pytest.mark.asyncio
    async def test_reentering_over_limit_gets_fresh_deadline(self, async_session, uow, sample_tenant, monkeypatch):
        monkeypatch.setattr("apps.billing.grace.notify_grace_period_started", AsyncMock(return_value=True))
        old_deadline = utcnow() - timedelta(days=40)
        tenant = await async_session.get(Tenant, sample_tenant)
        tenant.grace_deadline = old_deadline
        async_session.add(tenant)
        await async_session.commit()
        service = GracePeriodService(uow)

        cleared = await service.check_usage(sample_tenant)
        assert cleared.transition == "cleared"

        for index in range(11):
            await create_model(async_session, sample_tenant, f"M{index}", [MB])
        status = await service.check_usage(sample_tenant)

        assert status.transition == "entered_grace"
        assert status.grace_deadline > as_utc(old_deadline) + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_paid_tenant_is_judged_by_its_own_tier(self, async_session, uow, sample_user, monkeypatch):
        notify = AsyncMock(return_value=True)
        monkeypatch.setattr("apps.billing.grace.notify_grace_period_started", notify)
        tenant_id = await create_tenant(async_session, owner_id=sample_user, name="Paid", subscription_tier="basic")
        for index in range(12):
            await create_model(async_session, tenant_id, f"M{index}", [MB])

        status = await GracePeriodService(uow).check_usage(tenant_id)

        assert status.state == GraceState.COMPLIANT
        assert status.transition is None
        assert status.limits.model_count == 300
        notify.assert_not_awaited()
