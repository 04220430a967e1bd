from typing import Optional
from framework.logging.logger import get_logger
from .base import BaseBillingProvider

logger = get_logger("billing.mock")


class MockBillingProvider(BaseBillingProvider):
    """Development driver: logs every call and succeeds."""

    async def create_customer(self, tenant_id: int, name: str, email: Optional[str] = None) -> str:
        customer_id = f"mock-cust-{tenant_id}"
        logger.info(f"[MOCK] create billing customer {customer_id} for tenant {tenant_id}")
        return customer_id

    async def delete_customer(self, customer_id: str) -> None:
        logger.info(f"[MOCK] delete billing customer {customer_id}")

    async def revoke_subscription(self, subscription_id: str) -> None:
        logger.info(f"[MOCK] revoke subscription {subscription_id}")
