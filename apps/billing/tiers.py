"""Subscription tiers and the limits they grant."""

from typing import Dict, Optional
from pydantic import BaseModel
from framework.exceptions.handler import QuotaExceededError

UNLIMITED = -1

MiB = 1024 * 1024
GiB = 1024 * MiB


class TierConfig(BaseModel):
    name: str
    max_members: int
    storage_limit: int
    model_count_limit: int


SUBSCRIPTION_TIERS: Dict[str, TierConfig] = {
    "free": TierConfig(name="Free", max_members=1, storage_limit=512 * MiB, model_count_limit=10),
    "basic": TierConfig(name="Basic", max_members=1, storage_limit=25 * GiB, model_count_limit=300),
    "pro": TierConfig(name="Pro", max_members=5, storage_limit=200 * GiB, model_count_limit=UNLIMITED),
}

DEFAULT_TIER = "free"


def normalize_tier(tier: Optional[str]) -> str:
    if tier and tier.lower() in SUBSCRIPTION_TIERS:
        return tier.lower()
    return DEFAULT_TIER


def get_tier_config(tier: Optional[str]) -> TierConfig:
    return SUBSCRIPTION_TIERS[normalize_tier(tier)]


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


class TenantLimits(BaseModel):
    """Effective limits of one tenant: explicit tenant columns win over tier defaults."""
    tier: str
    storage_bytes: int
    model_count: int
    members: int

    @classmethod
    def resolve(
        cls,
        tier: Optional[str],
        storage_limit: Optional[int] = None,
        model_count_limit: Optional[int] = None,
        member_limit: Optional[int] = None,
    ) -> "TenantLimits":
        config = get_tier_config(tier)
        return cls(
            tier=normalize_tier(tier),
            storage_bytes=config.storage_limit if storage_limit is None else storage_limit,
            model_count=config.model_count_limit if model_count_limit is None else model_count_limit,
            members=config.max_members if member_limit is None else member_limit,
        )

    @classmethod
    def for_tenant(cls, tenant) -> "TenantLimits":
        return cls.resolve(
            tenant.subscription_tier,
            tenant.storage_limit,
            tenant.model_count_limit,
            tenant.member_limit,
        )


def ensure_upload_allowed(usage, limits: TenantLimits, additional_bytes: int, additional_models: int = 1) -> None:
    """Pre-upload quota check. Raises QuotaExceededError naming the limit that would be crossed."""
    plan = get_tier_config(limits.tier).name

    if not is_unlimited(limits.model_count) and usage.model_count + additional_models > limits.model_count:
        raise QuotaExceededError(
            f"Model limit reached. Your {plan} plan allows {limits.model_count} model(s). "
            "Upgrade to add more models.",
            limit="model_count",
        )

    if not is_unlimited(limits.storage_bytes) and usage.storage_bytes + additional_bytes > limits.storage_bytes:
        limit_mb = limits.storage_bytes // MiB
        raise QuotaExceededError(
            f"Storage limit exceeded. Your {plan} plan allows {limit_mb} MB. Upgrade for more storage.",
            limit="storage",
        )
