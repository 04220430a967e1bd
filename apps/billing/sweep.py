"""
Retention sweep: the scheduled batch job around RetentionService.

Tenants are processed one at a time and every outcome is written as a run
item, so a failure is isolated to its tenant and attributable afterwards.
"""

from typing import Optional
from pydantic import BaseModel
from framework.config import settings
from framework.logging.logger import get_logger
from framework.repository.unit_of_work import UnitOfWork
from framework.storage import BaseObjectStorage
from framework.timeutils import utcnow
from apps.identity.repository import TenantRepository
from .models import RetentionRunItem, RetentionItemStatus, RunStatus
from .repository import RetentionRunRepository, RetentionRunItemRepository
from .retention import RetentionService

logger = get_logger("retention_sweep")


class SweepAbortedError(Exception):
    """Raised when a sanity check stops a sweep before it touches anything."""


class RetentionSweepSummary(BaseModel):
    run_id: int
    status: RunStatus
    total_tenants: int = 0
    cleaned_tenants: int = 0
    failed_tenants: int = 0
    deleted_models: int = 0
    deleted_bytes: int = 0


class RetentionSweep:
    def __init__(
        self,
        uow: UnitOfWork,
        storage: Optional[BaseObjectStorage] = None,
        batch_size: int = 100,
        max_tenants: Optional[int] = None,
    ):
        self.uow = uow
        self.service = RetentionService(uow, storage=storage)
        self.batch_size = batch_size
        self.max_tenants = settings.RETENTION_MAX_TENANTS_PER_RUN if max_tenants is None else max_tenants

    async def run(self) -> RetentionSweepSummary:
        runs = self.uow.get_repository(RetentionRunRepository)
        items = self.uow.get_repository(RetentionRunItemRepository)
        tenants = self.uow.get_repository(TenantRepository)

        # Failing to write the run record aborts the sweep
        run_id = await runs.start()
        await self.uow.commit()
        logger.info(f"Retention run {run_id} started")

        summary = RetentionSweepSummary(run_id=run_id, status=RunStatus.RUNNING)
        try:
            due = await tenants.count_with_grace_deadline()
            if self.max_tenants and due > self.max_tenants:
                raise SweepAbortedError(
                    f"{due} tenants in grace exceeds the sanity limit of {self.max_tenants}; "
                    "rerun with a higher --max-tenants if this is expected"
                )

            now = utcnow()
            after_id = 0
            while True:
                page = await tenants.list_ids_with_grace_deadline(after_id=after_id, limit=self.batch_size)
                if not page:
                    break
                after_id = page[-1]
                for tenant_id in page:
                    await self._process_tenant(tenant_id, run_id, now, items, summary)

            summary.status = RunStatus.COMPLETED
            await runs.finish(
                run_id,
                RunStatus.COMPLETED,
                total_tenants=summary.total_tenants,
                cleaned_tenants=summary.cleaned_tenants,
                deleted_models=summary.deleted_models,
                deleted_bytes=summary.deleted_bytes,
            )
            await self.uow.commit()
        except Exception as e:
            await self.uow.rollback()
            summary.status = RunStatus.FAILED
            await runs.finish(
                run_id,
                RunStatus.FAILED,
                error=str(e),
                total_tenants=summary.total_tenants,
                cleaned_tenants=summary.cleaned_tenants,
                deleted_models=summary.deleted_models,
                deleted_bytes=summary.deleted_bytes,
            )
            await self.uow.commit()
            logger.error(f"Retention run {run_id} failed: {e!r}")
            raise

        logger.info(
            f"Retention run {run_id} completed | tenants={summary.total_tenants} | "
            f"cleaned={summary.cleaned_tenants} | failed={summary.failed_tenants} | "
            f"models={summary.deleted_models} | bytes={summary.deleted_bytes}"
        )
        return summary

    async def _process_tenant(self, tenant_id, run_id, now, items, summary: RetentionSweepSummary) -> None:
        summary.total_tenants += 1
        try:
            result = await self.service.enforce_retention(tenant_id, now=now)
        except Exception as e:
            await self.uow.rollback()
            summary.failed_tenants += 1
            logger.error(f"Retention failed for tenant {tenant_id}: {e!r}")
            await items.create(
                RetentionRunItem(run_id=run_id, tenant_id=tenant_id, status=RetentionItemStatus.FAILED, error=str(e))
            )
            await self.uow.commit()
            return

        if result.status == RetentionItemStatus.CLEANUP_DONE:
            summary.cleaned_tenants += 1
            summary.deleted_models += len(result.deleted_model_ids)
            summary.deleted_bytes += result.deleted_bytes

        error = None
        if result.failed_model_ids:
            error = f"Failed to evict models: {', '.join(result.failed_model_ids)}"
        await items.create(
            RetentionRunItem(
                run_id=run_id,
                tenant_id=tenant_id,
                status=result.status,
                deleted_models=len(result.deleted_model_ids),
                deleted_bytes=result.deleted_bytes,
                error=error,
            )
        )
        await self.uow.commit()
