"""
Account deletion sweep.

For every user past their deletion deadline (and neither canceled nor
completed), each owned tenant is cascaded: storage prefix, billing customer,
then database rows in one transaction. A user is only hard-deleted once all of
their tenants are gone; otherwise the user is recorded as failed and picked up
again by the next run.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel
from framework.billing import BaseBillingProvider, get_billing_provider
from framework.config import settings
from framework.logging.logger import get_logger
from framework.notification.notifier import notify_account_deletion_completed
from framework.repository.unit_of_work import UnitOfWork
from framework.storage import BaseObjectStorage, get_storage
from framework.timeutils import as_utc, utcnow
from apps.billing.models import RunStatus
from apps.billing.sweep import SweepAbortedError
from apps.identity.repository import TenantRepository, UserRepository, UserSessionRepository
from apps.library.repository import ModelRepository
from .models import AccountDeletionRunItem, DeletionItemStatus
from .repository import AccountDeletionRunRepository, AccountDeletionRunItemRepository

logger = get_logger("account_deletion_sweep")


class TenantCascadeResult(BaseModel):
    tenant_id: int
    deleted_objects: int = 0
    deleted_bytes: int = 0
    failed_objects: int = 0
    billing_customer_deleted: bool = False
    completed: bool = False
    error: Optional[str] = None


class AccountDeletionSummary(BaseModel):
    run_id: int
    status: RunStatus
    total_users: int = 0
    deleted_users: int = 0
    failed_users: int = 0
    deleted_tenants: int = 0
    deleted_bytes: int = 0


class TenantCascadeError(Exception):
    def __init__(self, tenant_id: int, cause: Exception):
        super().__init__(f"Tenant {tenant_id} cascade failed: {cause!r}")
        self.tenant_id = tenant_id


class AccountDeletionSweep:
    def __init__(
        self,
        uow: UnitOfWork,
        storage: Optional[BaseObjectStorage] = None,
        billing: Optional[BaseBillingProvider] = None,
        batch_size: Optional[int] = None,
        max_users: Optional[int] = None,
    ):
        self.uow = uow
        self.storage = storage or get_storage()
        self.billing = billing or get_billing_provider()
        self.batch_size = batch_size or settings.STORAGE_DELETE_BATCH_SIZE
        self.max_users = settings.ACCOUNT_DELETION_MAX_USERS_PER_RUN if max_users is None else max_users

    async def run(self) -> AccountDeletionSummary:
        runs = self.uow.get_repository(AccountDeletionRunRepository)

        run_id = await runs.start()
        await self.uow.commit()
        logger.info(f"Account deletion run {run_id} started")

        summary = AccountDeletionSummary(run_id=run_id, status=RunStatus.RUNNING)
        try:
            user_ids = await self.uow.get_repository(UserRepository).list_due_for_deletion(utcnow())
            if self.max_users and len(user_ids) > self.max_users:
                raise SweepAbortedError(
                    f"{len(user_ids)} accounts due for deletion exceeds the sanity limit of {self.max_users}; "
                    "rerun with a higher --max-users if this is expected"
                )

            for user_id in user_ids:
                await self._process_user(run_id, user_id, summary)

            summary.status = RunStatus.COMPLETED
            await runs.finish(run_id, RunStatus.COMPLETED, **self._totals(summary))
            await self.uow.commit()
        except Exception as e:
            await self.uow.rollback()
            summary.status = RunStatus.FAILED
            await runs.finish(run_id, RunStatus.FAILED, error=str(e), **self._totals(summary))
            await self.uow.commit()
            logger.error(f"Account deletion run {run_id} failed: {e!r}")
            raise

        logger.info(
            f"Account deletion run {run_id} completed | users={summary.total_users} | "
            f"deleted={summary.deleted_users} | failed={summary.failed_users} | "
            f"tenants={summary.deleted_tenants} | bytes={summary.deleted_bytes}"
        )
        return summary

    @staticmethod
    def _totals(summary: AccountDeletionSummary) -> Dict[str, int]:
        return {
            "total_users": summary.total_users,
            "deleted_users": summary.deleted_users,
            "failed_users": summary.failed_users,
            "deleted_tenants": summary.deleted_tenants,
            "deleted_bytes": summary.deleted_bytes,
        }

    async def _process_user(self, run_id: int, user_id: int, summary: AccountDeletionSummary) -> None:
        summary.total_users += 1
        users = self.uow.get_repository(UserRepository)
        user = await users.get_by_id(user_id)
        if user is None:
            await self._record_failure(run_id, user_id, [], f"User {user_id} not found", summary)
            return
        email = user.email
        deadline = as_utc(user.account_deletion_deadline)
        final_notice_sent = user.account_deletion_final_notice_sent_at is not None

        tenant_ids = await self.uow.get_repository(TenantRepository).list_ids_by_owner(user_id)
        results: List[TenantCascadeResult] = []
        for tenant_id in tenant_ids:
            result = TenantCascadeResult(tenant_id=tenant_id)
            results.append(result)
            try:
                await self.cascade_tenant(tenant_id, result)
            except Exception as e:
                await self.uow.rollback()
                result.error = repr(e)
                await self._record_failure(run_id, user_id, results, str(TenantCascadeError(tenant_id, e)), summary)
                return

        now = utcnow()
        if email and deadline and not final_notice_sent:
            if await notify_account_deletion_completed(email, deadline, user_id=user_id):
                await users.update_fields(user_id, account_deletion_final_notice_sent_at=now)
                await self.uow.commit()

        deleted_bytes = sum(r.deleted_bytes for r in results)
        try:
            await self.uow.get_repository(AccountDeletionRunItemRepository).create(
                AccountDeletionRunItem(
                    run_id=run_id,
                    user_id=user_id,
                    status=DeletionItemStatus.DELETED,
                    deleted_tenants=len(results),
                    deleted_objects=sum(r.deleted_objects for r in results),
                    deleted_bytes=deleted_bytes,
                    tenant_results=[r.model_dump() for r in results],
                )
            )
            await users.delete_user(user_id)
            await self.uow.commit()
        except Exception as e:
            await self.uow.rollback()
            await self._record_failure(run_id, user_id, results, f"User {user_id} delete failed: {e!r}", summary)
            return

        summary.deleted_users += 1
        summary.deleted_tenants += len(results)
        summary.deleted_bytes += deleted_bytes
        logger.info(f"User {user_id} deleted | tenants={len(results)} | bytes={deleted_bytes}")

    async def _record_failure(self, run_id, user_id, results, error: str, summary: AccountDeletionSummary) -> None:
        summary.failed_users += 1
        logger.error(f"Account deletion failed for user {user_id}: {error}")
        await self.uow.get_repository(AccountDeletionRunItemRepository).create(
            AccountDeletionRunItem(
                run_id=run_id,
                user_id=user_id,
                status=DeletionItemStatus.FAILED,
                deleted_tenants=sum(1 for r in results if r.completed),
                deleted_objects=sum(r.deleted_objects for r in results),
                deleted_bytes=sum(r.deleted_bytes for r in results),
                tenant_results=[r.model_dump() for r in results],
                error=error,
            )
        )
        await self.uow.commit()

    async def cascade_tenant(self, tenant_id: int, result: TenantCascadeResult) -> TenantCascadeResult:
        """Storage, then billing, then every row of the tenant in one transaction."""
        tenants = self.uow.get_repository(TenantRepository)
        tenant = await tenants.get_by_id(tenant_id)
        billing_customer_id = tenant.billing_customer_id if tenant else None

        await self._purge_storage(tenant_id, result)

        if billing_customer_id:
            try:
                await self.billing.delete_customer(billing_customer_id)
                result.billing_customer_deleted = True
            except Exception as e:
                logger.warning(
                    f"Billing customer delete failed | tenant_id={tenant_id} | "
                    f"customer_id={billing_customer_id} | error={e!r}"
                )

        await self.uow.get_repository(ModelRepository).delete_tenant_rows(tenant_id)
        await self.uow.get_repository(UserSessionRepository).clear_active_tenant(tenant_id)
        await tenants.delete_tenant(tenant_id)
        await self.uow.commit()

        result.completed = True
        logger.info(
            f"Tenant {tenant_id} deleted | objects={result.deleted_objects} | "
            f"bytes={result.deleted_bytes} | failed_objects={result.failed_objects}"
        )
        return result

    async def _purge_storage(self, tenant_id: int, result: TenantCascadeResult) -> None:
        prefix = f"{tenant_id}/"
        token = None
        while True:
            page = await self.storage.list_files(prefix, limit=self.batch_size, continuation_token=token)
            if page.files:
                sizes = {f.key: f.size for f in page.files}
                deleted = await self.storage.delete_files(list(sizes))
                result.deleted_objects += len(deleted.deleted)
                result.deleted_bytes += sum(sizes.get(key, 0) for key in deleted.deleted)
                result.failed_objects += len(deleted.failed)
                if deleted.failed:
                    logger.warning(
                        f"Partial storage delete | tenant_id={tenant_id} | failed={len(deleted.failed)} | "
                        f"keys={[f.key for f in deleted.failed][:20]}"
                    )
            if not page.is_truncated or not page.continuation_token:
                break
            token = page.continuation_token
