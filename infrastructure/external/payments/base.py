"""
Base processor client implementing shared concerns: retry, logging, status mapping.

Concrete processors subclass and implement `_create_intent` / `_refund`.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import ProcessorIntent, ProcessorRefund
from infrastructure.external.payments.exceptions import PaymentRecoverableError
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

T = TypeVar("T")


class BasePaymentClient:
    provider: str = "base"

    def __init__(self, *, retry: Optional[dict[str, Any]] = None) -> None:
        self._retry_cfg = retry or {"max": 2, "base": 0.2}

    async def _retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.0, max=2.0),
            retry=retry_if_exception_type(PaymentRecoverableError),
            reraise=True,
        ):
            with attempt:
                return await fn()
        raise AssertionError("unreachable")  # pragma: no cover

    async def create_intent(
        self,
        amount: int,
        currency: str,
        payment_method: str,
        *,
        idempotency_key: str | None = None,
        metadata: dict | None = None,
    ) -> ProcessorIntent:
        self._log("processor_create_intent", amount=amount, currency=currency)
        intent = await self._retry(
            lambda: self._create_intent(
                amount, currency, payment_method,
                idempotency_key=idempotency_key, metadata=dict(metadata or {}),
            )
        )
        self._log("processor_intent_created", intent_id=intent.id, status=intent.status)
        return intent

    async def refund(
        self,
        transaction_id: str,
        amount: int,
        *,
        reference_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> ProcessorRefund:
        self._log("processor_refund", transaction_id=transaction_id, amount=amount)
        result = await self._retry(
            lambda: self._refund(
                transaction_id, amount,
                reference_id=reference_id, idempotency_key=idempotency_key,
            )
        )
        self._log("processor_refund_created", refund_id=result.id, status=result.status)
        return result

    async def aclose(self) -> None:
        """Release processor resources; no-op by default."""

    async def _create_intent(self, amount, currency, payment_method, *, idempotency_key, metadata) -> ProcessorIntent:
        raise NotImplementedError

    async def _refund(self, transaction_id, amount, *, reference_id, idempotency_key) -> ProcessorRefund:
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
