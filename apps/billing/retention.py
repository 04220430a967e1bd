"""
Per-tenant retention enforcement (eviction).

Once a tenant's retention window has passed and it is still over its limits,
the oldest models are evicted one at a time until it fits. Oldest-first is
deliberate: users can predict what goes next from the creation dates alone.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel
from framework.exceptions.handler import NotFoundError
from framework.logging.logger import get_logger
from framework.repository.unit_of_work import UnitOfWork
from framework.storage import BaseObjectStorage
from framework.timeutils import as_utc, utcnow
from apps.identity.repository import TenantRepository
from apps.library.service import ModelLifecycleService
from .grace import retention_deadline_for
from .models import RetentionItemStatus
from .tiers import TenantLimits
from .usage import compute_usage, list_models_with_sizes, is_over_limits, is_over_storage, is_over_model_count

logger = get_logger("retention")


class RetentionResult(BaseModel):
    tenant_id: int
    status: RetentionItemStatus
    deleted_model_ids: List[str] = []
    failed_model_ids: List[str] = []
    deleted_bytes: int = 0
    retention_deadline: Optional[datetime] = None


class RetentionService:
    def __init__(self, uow: UnitOfWork, storage: Optional[BaseObjectStorage] = None):
        self.uow = uow
        self.lifecycle = ModelLifecycleService(uow, storage=storage)

    @property
    def tenants(self) -> TenantRepository:
        return self.uow.get_repository(TenantRepository)

    async def enforce_retention(self, tenant_id: int, now: Optional[datetime] = None) -> RetentionResult:
        """
        Evict oldest-first until the tenant is within limits.

        Idempotent: on a tenant that is already clean this returns no_grace or
        cleanup_skipped without deleting anything. Commits after every model so
        one failing model only rolls back itself.
        """
        now = now or utcnow()
        tenant = await self.tenants.get_by_id(tenant_id)
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        grace_deadline = as_utc(tenant.grace_deadline)
        limits = TenantLimits.for_tenant(tenant)

        if grace_deadline is None:
            return RetentionResult(tenant_id=tenant_id, status=RetentionItemStatus.NO_GRACE)

        retention_deadline = retention_deadline_for(grace_deadline)
        if now <= retention_deadline:
            return RetentionResult(
                tenant_id=tenant_id,
                status=RetentionItemStatus.WITHIN_RETENTION,
                retention_deadline=retention_deadline,
            )

        usage = await compute_usage(self.uow, tenant_id)
        if not is_over_limits(usage, limits):
            await self.tenants.set_grace_deadline(tenant_id, None)
            await self.tenants.set_usage_counters(tenant_id, usage.storage_bytes, usage.model_count)
            await self.uow.commit()
            logger.info(f"Tenant {tenant_id} already within limits, grace cleared without eviction")
            return RetentionResult(
                tenant_id=tenant_id,
                status=RetentionItemStatus.CLEANUP_SKIPPED,
                retention_deadline=retention_deadline,
            )

        candidates = await list_models_with_sizes(self.uow, tenant_id)
        remaining_bytes = usage.storage_bytes
        remaining_count = usage.model_count
        deleted: List[str] = []
        failed: List[str] = []
        deleted_bytes = 0

        for candidate in candidates:
            if not (is_over_storage(remaining_bytes, limits) or is_over_model_count(remaining_count, limits)):
                break
            try:
                if not await self.lifecycle.models.is_active(candidate.model_id, tenant_id):
                    # Deleted since the candidate list was read; it no longer counts against the limits
                    remaining_bytes -= candidate.size
                    remaining_count -= 1
                    logger.info(f"Model already deleted | tenant_id={tenant_id} | model_id={candidate.model_id}")
                    continue
                storage = await self.lifecycle.delete_model_storage(candidate.model_id)
                if storage.failed_keys:
                    logger.warning(
                        f"Evicting with orphaned objects | tenant_id={tenant_id} | "
                        f"model_id={candidate.model_id} | keys={storage.failed_keys}"
                    )
                size = await self.lifecycle.soft_delete_model(candidate.model_id, tenant_id)
                await self.uow.commit()
            except NotFoundError:
                await self.uow.rollback()
                remaining_bytes -= candidate.size
                remaining_count -= 1
                logger.info(f"Model deleted during eviction | tenant_id={tenant_id} | model_id={candidate.model_id}")
                continue
            except Exception as e:
                await self.uow.rollback()
                failed.append(candidate.model_id)
                logger.error(
                    f"Eviction failed | tenant_id={tenant_id} | model_id={candidate.model_id} | error={e!r}"
                )
                continue

            deleted.append(candidate.model_id)
            deleted_bytes += size
            remaining_bytes -= size
            remaining_count -= 1
            logger.info(f"Evicted model | tenant_id={tenant_id} | model_id={candidate.model_id} | bytes={size}")

        final_usage = await compute_usage(self.uow, tenant_id)
        await self.tenants.set_usage_counters(tenant_id, final_usage.storage_bytes, final_usage.model_count)
        if not is_over_limits(final_usage, limits):
            await self.tenants.set_grace_deadline(tenant_id, None)
        else:
            logger.warning(
                f"Tenant {tenant_id} still over limits after eviction | "
                f"models={final_usage.model_count} | bytes={final_usage.storage_bytes}"
            )
        await self.uow.commit()

        return RetentionResult(
            tenant_id=tenant_id,
            status=RetentionItemStatus.CLEANUP_DONE,
            deleted_model_ids=deleted,
            failed_model_ids=failed,
            deleted_bytes=deleted_bytes,
            retention_deadline=retention_deadline,
        )
