from abc import ABC, abstractmethod
from typing import Optional


class BillingError(Exception):
    """Raised when the billing provider rejects a call or does not answer in time."""


class BaseBillingProvider(ABC):
    """Customer and subscription operations needed by the enforcement engine."""

    @abstractmethod
    async def create_customer(self, tenant_id: int, name: str, email: Optional[str] = None) -> str:
        pass

    @abstractmethod
    async def delete_customer(self, customer_id: str) -> None:
        pass

    @abstractmethod
    async def revoke_subscription(self, subscription_id: str) -> None:
        pass
