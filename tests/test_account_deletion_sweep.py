"""Account deletion sweep tests."""
import pytest
from unittest.mock import AsyncMock
from sqlmodel import select
from apps.account_deletion.models import AccountDeletionRun, DeletionItemStatus
from apps.account_deletion.repository import AccountDeletionRunItemRepository
from apps.account_deletion.sweep import AccountDeletionSweep
from apps.billing.models import RunStatus
from apps.billing.sweep import SweepAbortedError
from apps.identity.models import Tenant, User, UserSession
from apps.library.models import Model, ModelFile
from helpers import MB, create_model, create_session, create_tenant, create_user, days_ago, utc


@pytest.fixture(autouse=True)
def notify(monkeypatch) -> AsyncMock:
    mock = AsyncMock(return_value=True)
    monkeypatch.setattr("apps.account_deletion.sweep.notify_account_deletion_completed", mock)
    return mock


async def _due_user(session, storage, name, model_sizes=(MB, 2 * MB), **tenant_fields):
    user_id = await create_user(
        session,
        email=f"{name}@example.com",
        account_deletion_requested_at=days_ago(31),
        account_deletion_deadline=days_ago(1),
    )
    tenant_id = await create_tenant(session, owner_id=user_id, name=name, **tenant_fields)
    for index, size in enumerate(model_sizes):
        await create_model(session, tenant_id, f"{name}{index}", [size], storage=storage)
    return user_id, tenant_id


async def _exists(session, model, **filters):
    statement = select(model)
    for field, value in filters.items():
        statement = statement.where(getattr(model, field) == value)
    result = await session.exec(statement)
    return result.first() is not None


class TestAccountDeletionSweep:

    @pytest.mark.asyncio
    async def test_deletes_due_users_and_isolates_failures(self, async_session, uow, storage, billing):
        users = [await _due_user(async_session, storage, f"user{i}") for i in range(4)]
        failing_user, failing_tenant = users[1]
        storage.fail_list_prefixes.add(f"{failing_tenant}/")

        summary = await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        assert summary.status == RunStatus.COMPLETED
        assert summary.total_users == 4
        assert summary.deleted_users == 3
        assert summary.failed_users == 1
        assert summary.deleted_tenants == 3
        assert summary.deleted_bytes == 3 * 3 * MB

        items = await uow.get_repository(AccountDeletionRunItemRepository).list_for_run(summary.run_id)
        deleted = [i for i in items if i.status == DeletionItemStatus.DELETED]
        failed = [i for i in items if i.status == DeletionItemStatus.FAILED]
        assert len(deleted) == 3
        assert [i.user_id for i in failed] == [failing_user]
        assert "Injected list failure" in failed[0].error
        assert sum(i.deleted_bytes for i in deleted) == summary.deleted_bytes

        run = await async_session.get(AccountDeletionRun, summary.run_id)
        await async_session.refresh(run)
        assert run.status == RunStatus.COMPLETED
        assert run.deleted_bytes == summary.deleted_bytes
        assert run.failed_users == 1

        for user_id, tenant_id in users:
            survived = user_id == failing_user
            assert await _exists(async_session, User, id=user_id) is survived
            assert await _exists(async_session, Tenant, id=tenant_id) is survived
            assert await _exists(async_session, Model, tenant_id=tenant_id) is survived
        assert all(key.startswith(f"{failing_tenant}/") for key in storage.objects)
        assert await _exists(async_session, ModelFile)

    @pytest.mark.asyncio
    async def test_failed_user_is_retried_next_run(self, async_session, uow, storage, billing):
        user_id, tenant_id = await _due_user(async_session, storage, "retry")
        storage.fail_list_prefixes.add(f"{tenant_id}/")
        await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        storage.fail_list_prefixes.clear()
        summary = await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        assert summary.deleted_users == 1
        assert not await _exists(async_session, User, id=user_id)

    @pytest.mark.asyncio
    async def test_storage_is_purged_in_batches(self, async_session, uow, storage, billing):
        _, tenant_id = await _due_user(async_session, storage, "pages", model_sizes=[MB] * 5)

        summary = await AccountDeletionSweep(uow, storage=storage, billing=billing, batch_size=2).run()

        assert [len(batch) for batch in storage.delete_batches] == [2, 2, 1]
        assert storage.objects == {}
        items = await uow.get_repository(AccountDeletionRunItemRepository).list_for_run(summary.run_id)
        assert items[0].deleted_objects == 5
        assert items[0].tenant_results[0]["tenant_id"] == tenant_id

    @pytest.mark.asyncio
    async def test_billing_customer_deleted_and_failures_tolerated(self, async_session, uow, storage, billing):
        await _due_user(async_session, storage, "paying", billing_customer_id="cus_paying")

        summary = await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        assert billing.deleted_customers == ["cus_paying"]
        assert summary.deleted_users == 1

        user_id, _ = await _due_user(async_session, storage, "unlucky", billing_customer_id="cus_unlucky")
        billing.fail = True

        summary = await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        assert summary.deleted_users == 1
        assert not await _exists(async_session, User, id=user_id)

    @pytest.mark.asyncio
    async def test_completion_notice_sent_once_and_failure_is_harmless(self, async_session, uow, storage, billing, notify):
        await _due_user(async_session, storage, "notified")

        await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        notify.assert_awaited_once()
        assert notify.await_args.args[0] == "notified@example.com"

        notify.reset_mock()
        notify.return_value = False
        user_id, _ = await _due_user(async_session, storage, "silent")

        summary = await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        notify.assert_awaited_once()
        assert summary.deleted_users == 1
        assert not await _exists(async_session, User, id=user_id)

    @pytest.mark.asyncio
    async def test_completion_notice_carries_the_scheduled_date(self, async_session, uow, storage, billing, notify):
        await create_user(
            async_session,
            email="dated@example.com",
            account_deletion_requested_at=utc(2025, 1, 1),
            account_deletion_deadline=utc(2025, 1, 31),
        )

        await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        notify.assert_awaited_once()
        assert notify.await_args.args[1] == utc(2025, 1, 31)

    @pytest.mark.asyncio
    async def test_sessions_are_cleaned_up(self, async_session, uow, storage, billing):
        user_id, tenant_id = await _due_user(async_session, storage, "leaving")
        own_session = await create_session(async_session, user_id, tenant_id)
        guest_id = await create_user(async_session, email="guest@example.com")
        guest_session = await create_session(async_session, guest_id, tenant_id)

        await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        assert not await _exists(async_session, UserSession, id=own_session)
        row = await async_session.get(UserSession, guest_session)
        await async_session.refresh(row)
        assert row.active_tenant_id is None

    @pytest.mark.asyncio
    async def test_only_due_users_are_processed(self, async_session, uow, storage, billing):
        future = await create_user(async_session, account_deletion_deadline=days_ago(-5))
        canceled = await create_user(
            async_session, account_deletion_deadline=days_ago(1), account_deletion_canceled_at=days_ago(2)
        )
        completed = await create_user(
            async_session, account_deletion_deadline=days_ago(1), account_deletion_completed_at=days_ago(0.5)
        )
        untouched = await create_user(async_session)

        summary = await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        assert summary.total_users == 0
        for user_id in (future, canceled, completed, untouched):
            assert await _exists(async_session, User, id=user_id)

    @pytest.mark.asyncio
    async def test_user_without_tenants_is_deleted(self, async_session, uow, storage, billing):
        user_id = await create_user(async_session, account_deletion_deadline=days_ago(1))

        summary = await AccountDeletionSweep(uow, storage=storage, billing=billing).run()

        assert summary.deleted_users == 1
        assert summary.deleted_tenants == 0
        assert not await _exists(async_session, User, id=user_id)

    @pytest.mark.asyncio
    async def test_sanity_ceiling(self, async_session, uow, storage, billing):
        for name in ("a", "b", "c"):
            await _due_user(async_session, storage, name)

        with pytest.raises(SweepAbortedError):
            await AccountDeletionSweep(uow, storage=storage, billing=billing, max_users=2).run()

        result = await async_session.exec(select(User))
        assert len(result.all()) == 3
        result = await async_session.exec(select(AccountDeletionRun))
        run = result.one()
        await async_session.refresh(run)
        assert run.status == RunStatus.FAILED
