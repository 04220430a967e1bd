"""
Stripe billing provider.

The stripe SDK is synchronous; calls run in a worker thread and are bounded by
BILLING_TIMEOUT_SECONDS. A customer that is already gone counts as deleted.
"""

import asyncio
from typing import Optional
import stripe
from framework.logging.logger import get_logger
from .base import BaseBillingProvider, BillingError

logger = get_logger("billing.stripe")


class StripeBillingProvider(BaseBillingProvider):
    def __init__(self, api_key: str, timeout_seconds: float = 20.0):
        if not api_key:
            raise ValueError("STRIPE_API_KEY is required for BILLING_DRIVER=stripe")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    async def _call(self, func, *args, **kwargs):
        kwargs["api_key"] = self.api_key
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise BillingError(f"Billing call timed out after {self.timeout_seconds}s") from e

    async def create_customer(self, tenant_id: int, name: str, email: Optional[str] = None) -> str:
        try:
            customer = await self._call(
                stripe.Customer.create,
                name=name,
                email=email,
                metadata={"tenant_id": str(tenant_id)},
            )
        except stripe.error.StripeError as e:
            raise BillingError(f"Failed to create customer for tenant {tenant_id}: {e}") from e
        return customer.id

    async def delete_customer(self, customer_id: str) -> None:
        try:
            await self._call(stripe.Customer.delete, customer_id)
        except stripe.error.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                logger.info(f"Billing customer already deleted | customer_id={customer_id}")
                return
            raise BillingError(f"Failed to delete customer {customer_id}: {e}") from e
        except stripe.error.StripeError as e:
            raise BillingError(f"Failed to delete customer {customer_id}: {e}") from e

    async def revoke_subscription(self, subscription_id: str) -> None:
        try:
            await self._call(stripe.Subscription.cancel, subscription_id)
        except stripe.error.StripeError as e:
            raise BillingError(f"Failed to revoke subscription {subscription_id}: {e}") from e
