"""
Usage accounting.

Usage is always recomputed from the model and file tables. The counters cached
on the tenant row drift under concurrent uploads and manual fixes, so they are
only ever written (for display), never read to make a decision.
"""

from datetime import datetime
from typing import List
from pydantic import BaseModel
from framework.repository.unit_of_work import UnitOfWork
from apps.library.repository import ModelRepository
from .tiers import TenantLimits, is_unlimited


class UsageSnapshot(BaseModel):
    model_count: int = 0
    storage_bytes: int = 0


class ModelSize(BaseModel):
    model_id: str
    created_at: datetime
    size: int


async def compute_usage(uow: UnitOfWork, tenant_id: int) -> UsageSnapshot:
    """Ground-truth usage over non-deleted models. Read-only."""
    repo = uow.get_repository(ModelRepository)
    return UsageSnapshot(
        model_count=await repo.count_active(tenant_id),
        storage_bytes=await repo.sum_active_storage(tenant_id),
    )


async def list_models_with_sizes(uow: UnitOfWork, tenant_id: int) -> List[ModelSize]:
    """Non-deleted models oldest first, with their aggregate file size."""
    repo = uow.get_repository(ModelRepository)
    rows = await repo.list_with_sizes(tenant_id)
    return [ModelSize(model_id=model_id, created_at=created_at, size=size) for model_id, created_at, size in rows]


def is_over_storage(storage_bytes: int, limits: TenantLimits) -> bool:
    return not is_unlimited(limits.storage_bytes) and storage_bytes > limits.storage_bytes


def is_over_model_count(model_count: int, limits: TenantLimits) -> bool:
    return not is_unlimited(limits.model_count) and model_count > limits.model_count


def is_over_limits(usage: UsageSnapshot, limits: TenantLimits) -> bool:
    return is_over_storage(usage.storage_bytes, limits) or is_over_model_count(usage.model_count, limits)
