"""
Deterministic in-process processor for development and tests.

Identifiers are derived from a counter so test runs are reproducible.
Failures and latency can be injected per operation. Like a real processor,
a repeated idempotency key returns the object created by the first call
instead of charging or refunding again.
"""
from __future__ import annotations

import asyncio
import itertools
from typing import Optional

from application.dtos.payments import ProcessorIntent, ProcessorRefund
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError


class FakePaymentProcessor(BasePaymentClient):
    provider = "fake"

    def __init__(self, *, delay: float = 0.0, retry: Optional[dict] = None) -> None:
        super().__init__(retry=retry or {"max": 0, "base": 0.0})
        self.delay = delay
        self.fail_create: Optional[Exception] = None
        self.fail_refund: Optional[Exception] = None
        # calls that reached the processor; keyed replays are counted apart
        self.create_calls = 0
        self.refund_calls = 0
        self.replayed_calls = 0
        self._seq = itertools.count(1)
        self._intents: dict[str, tuple[tuple, ProcessorIntent]] = {}
        self._refunds: dict[str, tuple[tuple, ProcessorRefund]] = {}

    def _replay(self, cache: dict, idempotency_key: Optional[str], params: tuple):
        if idempotency_key is None or idempotency_key not in cache:
            return None
        first_params, obj = cache[idempotency_key]
        if first_params != params:
            raise PaymentProviderError(
                "Idempotency key reused with different parameters", provider=self.provider
            )
        self.replayed_calls += 1
        return obj

    async def _create_intent(self, amount, currency, payment_method, *, idempotency_key, metadata) -> ProcessorIntent:
        params = (amount, currency, payment_method)
        cached = self._replay(self._intents, idempotency_key, params)
        if cached is not None:
            return cached
        self.create_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_create is not None:
            raise self.fail_create
        n = next(self._seq)
        intent = ProcessorIntent(
            id=f"pi_fake_{n:06d}",
            client_secret=f"pi_fake_{n:06d}_secret",
            status="pending",
            provider=self.provider,
        )
        if idempotency_key is not None:
            self._intents[idempotency_key] = (params, intent)
        return intent

    async def _refund(self, transaction_id, amount, *, reference_id, idempotency_key) -> ProcessorRefund:
        params = (transaction_id, amount, reference_id)
        cached = self._replay(self._refunds, idempotency_key, params)
        if cached is not None:
            return cached
        self.refund_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_refund is not None:
            raise self.fail_refund
        if amount <= 0:
            raise PaymentProviderError("Refund amount must be positive", provider=self.provider)
        refund = ProcessorRefund(id=f"re_fake_{next(self._seq):06d}", status="succeeded", provider=self.provider)
        if idempotency_key is not None:
            self._refunds[idempotency_key] = (params, refund)
        return refund
