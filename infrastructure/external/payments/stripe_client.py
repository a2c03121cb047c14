"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

Amounts are already in minor units. Idempotency keys are forwarded via the
`idempotency_key` request option so Stripe deduplicates retried calls.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from application.dtos.payments import ProcessorIntent, ProcessorRefund
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from core.settings import payment_settings
from core.logging_config import get_logger


logger = get_logger(__name__)

try:  # optional import to keep repo install-light
    import stripe  # type: ignore
except ImportError:  # pragma: no cover - graceful degradation
    stripe = None  # type: ignore


class StripePaymentProcessor(BasePaymentClient):
    provider = "stripe"

    def __init__(self, secret_key: Optional[str] = None):
        super().__init__(
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        if not stripe:
            raise RuntimeError("stripe SDK not installed. Install the 'stripe' extra.")
        key = secret_key or payment_settings.stripe.secret_key
        if not key:
            raise RuntimeError("PAYMENT__STRIPE__SECRET_KEY not configured")
        stripe.api_key = key

    def _translate(self, exc: Exception) -> Exception:
        if isinstance(exc, (stripe.RateLimitError, stripe.APIConnectionError)):
            return PaymentRecoverableError(str(exc), provider=self.provider)
        code = getattr(exc, "code", None)
        return PaymentProviderError(str(exc), provider=self.provider, provider_code=code)

    async def _create_intent(self, amount, currency, payment_method, *, idempotency_key, metadata) -> ProcessorIntent:
        metadata.setdefault("payment_method", payment_method)
        try:
            # SDK calls are blocking
            pi = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount,
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        return ProcessorIntent(
            id=str(pi["id"]),
            client_secret=str(pi.get("client_secret") or ""),
            status=self._map_status(str(pi["status"])),
            provider=self.provider,
        )

    async def _refund(self, transaction_id, amount, *, reference_id, idempotency_key) -> ProcessorRefund:
        if not reference_id:
            raise PaymentProviderError(
                "Missing PaymentIntent reference for refund",
                provider=self.provider,
                details={"transaction_id": transaction_id},
            )
        try:
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                payment_intent=reference_id,
                amount=amount,
                metadata={"transaction_id": transaction_id},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        return ProcessorRefund(
            id=str(refund["id"]),
            status=str(refund.get("status") or ""),
            provider=self.provider,
        )
