"""
Factory for payment processor clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import payment_settings
from application.ports.payment_gateway import PaymentProcessor


def get_payment_processor(provider: Optional[str] = None) -> PaymentProcessor:
    name = (provider or payment_settings.processor).lower()
    if name == "fake":
        from .fake import FakePaymentProcessor
        return FakePaymentProcessor()
    if name == "stripe":
        from .stripe_client import StripePaymentProcessor
        return StripePaymentProcessor()
    raise ValueError(f"Unsupported payment processor: {name}")
