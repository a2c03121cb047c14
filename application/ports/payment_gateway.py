"""
Payment processor port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters
(a deterministic fake for tests/dev and a Stripe adapter for production).
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import ProcessorIntent, ProcessorRefund


@runtime_checkable
class PaymentProcessor(Protocol):
    """Gateway protocol for the external payment processor.

    Calls may be slow, may fail, and may be duplicated by retries. A second
    call with the same ``idempotency_key`` must return the object created by
    the first one and must not charge or refund again; a key reused with
    different parameters is an error.
    """

    provider: str

    async def create_intent(
        self,
        amount: int,
        currency: str,
        payment_method: str,
        *,
        idempotency_key: str | None = None,
        metadata: dict | None = None,
    ) -> ProcessorIntent: ...

    async def refund(
        self,
        transaction_id: str,
        amount: int,
        *,
        reference_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> ProcessorRefund: ...
