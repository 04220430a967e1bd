from typing import Optional
from framework.config import settings
from .base import BaseBillingProvider, BillingError
from .mock_provider import MockBillingProvider
from .stripe_provider import StripeBillingProvider

_provider: Optional[BaseBillingProvider] = None


def get_billing_provider() -> BaseBillingProvider:
    """Provider selected by BILLING_DRIVER (mock, stripe)."""
    global _provider
    if _provider is None:
        driver = (settings.BILLING_DRIVER or "mock").lower()
        if driver == "stripe":
            _provider = StripeBillingProvider(
                api_key=settings.STRIPE_API_KEY,
                timeout_seconds=settings.BILLING_TIMEOUT_SECONDS,
            )
        else:
            _provider = MockBillingProvider()
    return _provider


__all__ = [
    "BaseBillingProvider",
    "BillingError",
    "MockBillingProvider",
    "StripeBillingProvider",
    "get_billing_provider",
]
