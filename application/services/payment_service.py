"""
Application service orchestrating the payment core use-cases.

Every primary operation follows the same skeleton:

    validate input -> idempotency lookup (replay on hit) -> reserve key
    -> audit attempt -> business checks -> side effects -> audit outcome
    -> store idempotent result -> return

This class depends only on application ports and domain types. Processor,
repositories, stores and locks are injected by the composition root
(``infrastructure.container``), keeping dependencies one-way.
"""
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_random

from application.dtos.payments import (
    CreatePaymentIntent,
    PaymentIntentResult,
    RefundRequest,
    RefundResult,
    WalletTransactionRequest,
    WalletTransactionResult,
)
from application.ports.alerting import Alerter, AlertSeverity
from application.ports.idempotency import IdempotencyStore
from application.ports.locking import KeyedLock
from application.ports.payment_gateway import PaymentProcessor
from application.services.audit_service import ANONYMOUS_USER, AuditService
from core.logging_config import get_logger
from domain.audit.entity import AuditLogEntry, AuditStatus
from domain.common.exceptions import ConcurrentUpdateException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentMethod, Refund, Transaction, WalletBalance
from domain.payment.exceptions import (
    InvalidRefundAmountError,
    PaymentError,
    TransactionNotFoundError,
)
from domain.payment.money import ensure_valid_amount
from domain.payment.repository import TransactionRepository, WalletRepository
from domain.payment.status import TransactionStatus
from shared.codes.payment_codes import PaymentErrorCode


logger = get_logger(__name__)

CREATE_PAYMENT_INTENT = "create_payment_intent"
PROCESS_REFUND = "process_refund"
PROCESS_WALLET_TRANSACTION = "process_wallet_transaction"
UPDATE_TRANSACTION_STATUS = "update_transaction_status"


class PaymentService:
    def __init__(
        self,
        *,
        processor: PaymentProcessor,
        transactions: TransactionRepository,
        wallets: WalletRepository,
        unit_of_work: Callable[[], AbstractUnitOfWork],
        audit: AuditService,
        idempotency: IdempotencyStore,
        alerter: Alerter,
        locks: KeyedLock,
        processor_timeout: float = 10.0,
        idempotency_wait: float = 10.0,
        idempotency_ttl: Optional[int] = None,
        wallet_write_attempts: int = 5,
    ) -> None:
        self.processor = processor
        self.transactions = transactions
        self.wallets = wallets
        self.unit_of_work = unit_of_work
        self.audit = audit
        self.idempotency = idempotency
        self.alerter = alerter
        self.locks = locks
        self.processor_timeout = processor_timeout
        self.idempotency_wait = idempotency_wait
        self.idempotency_ttl = idempotency_ttl
        self.wallet_write_attempts = wallet_write_attempts

    # ------------------------------------------------------------------ #
    # Primary operations
    # ------------------------------------------------------------------ #

    async def create_payment_intent(self, req: CreatePaymentIntent) -> PaymentIntentResult:
        ensure_valid_amount(req.amount)
        user_id = req.customer_id
        context = {
            "currency": req.currency.value,
            "payment_method": req.payment_method.value,
            "idempotency_key": req.idempotency_key,
        }

        async def execute() -> dict[str, Any]:
            await self._audit_attempt(CREATE_PAYMENT_INTENT, user_id, req.amount, context)
            try:
                intent = await self._call_processor(
                    self.processor.create_intent(
                        req.amount,
                        req.currency.value,
                        req.payment_method.value,
                        idempotency_key=_scoped(CREATE_PAYMENT_INTENT, req.idempotency_key),
                        metadata=dict(req.metadata or {}),
                    )
                )
                txn = Transaction(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    amount=req.amount,
                    currency=req.currency,
                    status=TransactionStatus.PENDING,
                    payment_method=req.payment_method,
                    description=req.description,
                    reference_id=intent.id,
                    metadata={
                        **(req.metadata or {}),
                        "provider": intent.provider,
                        "idempotency_key": req.idempotency_key,
                    },
                )
                await self.transactions.create(txn)
            except PaymentError as exc:
                await self._audit_rejected(CREATE_PAYMENT_INTENT, exc, user_id, req.amount, context)
                raise
            except Exception as exc:
                raise await self._failure(
                    CREATE_PAYMENT_INTENT, PaymentErrorCode.PAYMENT_INTENT_FAILED,
                    "Failed to create payment intent", exc, user_id, req.amount, context,
                ) from exc

            result = PaymentIntentResult(
                payment_intent_id=intent.id,
                client_secret=intent.client_secret,
                transaction_id=txn.id,
            )
            await self.audit.record(
                f"{CREATE_PAYMENT_INTENT}_success",
                user_id=user_id,
                amount=req.amount,
                status=AuditStatus.CREATED,
                metadata={**context, "payment_intent_id": intent.id, "transaction_id": txn.id},
            )
            logger.info(
                "payment_intent_created",
                payment_intent_id=intent.id,
                transaction_id=txn.id,
                amount=req.amount,
                currency=req.currency.value,
            )
            return result.model_dump()

        data = await self._run_idempotent(
            CREATE_PAYMENT_INTENT, req.idempotency_key, execute,
            failure_kind=PaymentErrorCode.PAYMENT_INTENT_FAILED,
            user_id=user_id, amount=req.amount,
        )
        return PaymentIntentResult.model_validate(data)

    async def process_refund(self, req: RefundRequest) -> RefundResult:
        if req.amount is not None:
            ensure_valid_amount(req.amount)
        context = {
            "transaction_id": req.transaction_id,
            "reason": req.reason.value,
            "idempotency_key": req.idempotency_key,
        }

        async def execute() -> dict[str, Any]:
            async with self.locks.hold(f"transaction:{req.transaction_id}"):
                return await self._refund_locked(req, context)

        data = await self._run_idempotent(
            PROCESS_REFUND, req.idempotency_key, execute,
            failure_kind=PaymentErrorCode.REFUND_FAILED,
            user_id=None, amount=req.amount,
        )
        return RefundResult.model_validate(data)

    async def _refund_locked(self, req: RefundRequest, context: dict[str, Any]) -> dict[str, Any]:
        try:
            original = await self.transactions.get_by_id(req.transaction_id)
        except Exception as exc:
            await self._audit_attempt(PROCESS_REFUND, None, req.amount, context)
            raise await self._failure(
                PROCESS_REFUND, PaymentErrorCode.REFUND_FAILED,
                "Failed to process refund", exc, None, req.amount, context,
            ) from exc

        user_id = original.user_id if original else None
        # omitted amount refunds whatever is still refundable
        amount = req.amount if req.amount is not None else (original.refundable_amount if original else 0)
        await self._audit_attempt(PROCESS_REFUND, user_id, amount, context)

        try:
            if original is None:
                raise TransactionNotFoundError(req.transaction_id)
            if amount <= 0 or amount > original.refundable_amount:
                raise InvalidRefundAmountError(amount, original.refundable_amount)

            processed = await self._call_processor(
                self.processor.refund(
                    original.id,
                    amount,
                    reference_id=original.reference_id,
                    idempotency_key=_scoped(PROCESS_REFUND, req.idempotency_key),
                )
            )
            refund = Refund(
                refund_id=processed.id,
                transaction_id=original.id,
                amount=amount,
                reason=req.reason,
                status=processed.status,
                currency=original.currency,
            )
            original.record_refund(refund)
            previous = original.status
            if original.is_fully_refunded and original.status == TransactionStatus.COMPLETED:
                original.transition_to(TransactionStatus.REFUNDED)
            await self.transactions.update(original)
        except PaymentError as exc:
            await self._audit_rejected(PROCESS_REFUND, exc, user_id, amount, context)
            raise
        except Exception as exc:
            raise await self._failure(
                PROCESS_REFUND, PaymentErrorCode.REFUND_FAILED,
                "Failed to process refund", exc, user_id, amount, context,
            ) from exc

        result = RefundResult(
            refund_id=refund.refund_id,
            transaction_id=original.id,
            amount=amount,
            status=refund.status,
            user_id=user_id,
        )
        await self.audit.record(
            f"{PROCESS_REFUND}_success",
            user_id=user_id,
            amount=amount,
            status=AuditStatus.COMPLETED,
            metadata={
                **context,
                "refund_id": refund.refund_id,
                "refunded_total": original.refunded_amount,
                "previous_status": previous.value,
                "transaction_status": original.status.value,
            },
        )
        logger.info(
            "refund_processed",
            refund_id=refund.refund_id,
            transaction_id=original.id,
            amount=amount,
            refunded_total=original.refunded_amount,
        )
        return result.model_dump()

    async def process_wallet_transaction(self, req: WalletTransactionRequest) -> WalletTransactionResult:
        ensure_valid_amount(req.amount)
        context = {
            "type": req.type.value,
            "currency": req.currency.value,
            "reference_id": req.reference_id,
            "idempotency_key": req.idempotency_key,
        }

        async def execute() -> dict[str, Any]:
            await self._audit_attempt(PROCESS_WALLET_TRANSACTION, req.user_id, req.amount, context)
            try:
                async with self.locks.hold(f"wallet:{req.user_id}"):
                    txn, before, after = await self._adjust_wallet(req)
            except PaymentError as exc:
                await self._audit_rejected(PROCESS_WALLET_TRANSACTION, exc, req.user_id, req.amount, context)
                raise
            except Exception as exc:
                raise await self._failure(
                    PROCESS_WALLET_TRANSACTION, PaymentErrorCode.WALLET_TRANSACTION_FAILED,
                    "Failed to process wallet transaction", exc, req.user_id, req.amount, context,
                ) from exc

            await self.audit.record(
                f"{PROCESS_WALLET_TRANSACTION}_success",
                user_id=req.user_id,
                amount=req.amount,
                status=AuditStatus.COMPLETED,
                metadata={
                    **context,
                    "transaction_id": txn.id,
                    "balance_before": before,
                    "balance_after": after,
                },
            )
            logger.info(
                "wallet_transaction_processed",
                user_id=req.user_id,
                transaction_id=txn.id,
                type=req.type.value,
                amount=req.amount,
                new_balance=after,
            )
            return WalletTransactionResult(transaction_id=txn.id, new_balance=after).model_dump()

        data = await self._run_idempotent(
            PROCESS_WALLET_TRANSACTION, req.idempotency_key, execute,
            failure_kind=PaymentErrorCode.WALLET_TRANSACTION_FAILED,
            user_id=req.user_id, amount=req.amount,
        )
        return WalletTransactionResult.model_validate(data)

    async def _adjust_wallet(self, req: WalletTransactionRequest) -> tuple[Transaction, int, int]:
        """
        Balance write and transaction record in one unit of work.

        Either both are committed or neither is; a lost version race rolls
        the unit back and the whole read-modify-write is retried.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.wallet_write_attempts),
            wait=wait_random(0, 0.05),
            retry=retry_if_exception_type(ConcurrentUpdateException),
            reraise=True,
        ):
            with attempt:
                async with self.unit_of_work() as uow:
                    wallet = await uow.wallets.get(req.user_id)
                    if wallet is None:
                        wallet = WalletBalance(user_id=req.user_id, currency=req.currency)
                    if wallet.currency != req.currency:
                        raise PaymentError(
                            f"Wallet is held in {wallet.currency.value}",
                            PaymentErrorCode.INVALID_CURRENCY,
                            details={"wallet_currency": wallet.currency.value, "currency": req.currency.value},
                            field="currency",
                        )
                    before = wallet.available_balance
                    after = wallet.apply(req.type, req.amount)
                    await uow.wallets.save(wallet)
                    txn = Transaction(
                        id=str(uuid.uuid4()),
                        user_id=req.user_id,
                        amount=req.amount,
                        currency=req.currency,
                        status=TransactionStatus.COMPLETED,
                        payment_method=PaymentMethod.WALLET,
                        description=req.description,
                        reference_id=req.reference_id,
                        metadata={
                            **(req.metadata or {}),
                            "type": req.type.value,
                            "balance_before": before,
                            "balance_after": after,
                            "idempotency_key": req.idempotency_key,
                        },
                    )
                    await uow.transactions.create(txn)
                return txn, before, after
        raise AssertionError("unreachable")  # pragma: no cover

    async def update_transaction_status(
        self,
        transaction_id: str,
        new_status: TransactionStatus | str,
        user_id: str,
    ) -> Transaction:
        try:
            target = TransactionStatus(new_status)
        except ValueError:
            raise PaymentError(
                f"Unknown transaction status: {new_status}",
                PaymentErrorCode.INVALID_STATUS_TRANSITION,
                details={"requested": str(new_status)},
                field="new_status",
            ) from None

        context = {"transaction_id": transaction_id, "requested_status": target.value}
        async with self.locks.hold(f"transaction:{transaction_id}"):
            try:
                txn = await self.transactions.get_by_id(transaction_id)
            except Exception as exc:
                await self._audit_attempt(UPDATE_TRANSACTION_STATUS, user_id, None, context)
                raise await self._failure(
                    UPDATE_TRANSACTION_STATUS, PaymentErrorCode.STATUS_UPDATE_FAILED,
                    "Failed to update transaction status", exc, user_id, None, context,
                ) from exc

            amount = txn.amount if txn else None
            await self._audit_attempt(UPDATE_TRANSACTION_STATUS, user_id, amount, context)
            try:
                if txn is None:
                    raise TransactionNotFoundError(transaction_id)
                previous = txn.transition_to(target)
                await self.transactions.update(txn)
            except PaymentError as exc:
                await self._audit_rejected(UPDATE_TRANSACTION_STATUS, exc, user_id, amount, context)
                raise
            except Exception as exc:
                raise await self._failure(
                    UPDATE_TRANSACTION_STATUS, PaymentErrorCode.STATUS_UPDATE_FAILED,
                    "Failed to update transaction status", exc, user_id, amount, context,
                ) from exc

        await self.audit.record(
            f"{UPDATE_TRANSACTION_STATUS}_success",
            user_id=user_id,
            amount=txn.amount,
            status=target,
            metadata={"transaction_id": txn.id, "old_status": previous.value, "new_status": target.value},
        )
        logger.info(
            "transaction_status_updated",
            transaction_id=txn.id,
            old_status=previous.value,
            new_status=target.value,
            user_id=user_id,
        )
        return txn

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    async def get_transaction(self, transaction_id: str) -> Transaction:
        txn = await self.transactions.get_by_id(transaction_id)
        if txn is None:
            raise TransactionNotFoundError(transaction_id)
        return txn

    async def get_wallet_balance(self, user_id: str) -> WalletBalance:
        """Current balance; a wallet that was never written reads as zero."""
        wallet = await self.wallets.get(user_id)
        return wallet if wallet is not None else WalletBalance(user_id=user_id)

    async def get_audit_logs(
        self,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        action: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        return await self.audit.query(user_id=user_id, start=start, end=end, action=action, limit=limit)

    async def aclose(self) -> None:
        close = getattr(self.processor, "aclose", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------ #
    # Idempotency
    # ------------------------------------------------------------------ #

    async def _run_idempotent(
        self,
        operation: str,
        key: str,
        execute: Callable[[], Awaitable[dict[str, Any]]],
        *,
        failure_kind: PaymentErrorCode,
        user_id: Optional[str],
        amount: Optional[int],
    ) -> dict[str, Any]:
        """
        Run ``execute`` at most once per (operation, key).

        Only successful results are stored; on any failure the reservation
        is released so a retry with the same key can run again. Concurrent
        duplicates wait for the winner and replay its result, or retry the
        reservation if the winner failed.
        """
        scoped = _scoped(operation, key)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.idempotency_wait

        while True:
            cached = await self._lookup(scoped)
            if cached is not None:
                # the first run may have learned the owner (refunds)
                await self.audit.record(
                    f"{operation}_replayed",
                    user_id=user_id or cached.get("user_id"),
                    amount=amount if amount is not None else cached.get("amount"),
                    status=AuditStatus.REPLAYED,
                    metadata={"idempotency_key": key},
                )
                logger.info("idempotent_replay", operation=operation, idempotency_key=key)
                return cached

            try:
                token = await self.idempotency.reserve(scoped)
            except Exception as exc:
                raise await self._failure(
                    operation, failure_kind, "Idempotency store unavailable",
                    exc, user_id, amount, {"idempotency_key": key},
                ) from exc

            if token is not None:
                stored = False
                try:
                    result = await execute()
                    await self._remember(operation, scoped, result, token)
                    stored = True
                    return result
                finally:
                    if not stored:
                        await self._release(scoped, token)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise PaymentError(
                    "A request with this idempotency key is still in progress",
                    PaymentErrorCode.IDEMPOTENCY_KEY_IN_PROGRESS,
                    details={"idempotency_key": key, "operation": operation},
                )
            logger.debug("idempotency_wait", operation=operation, idempotency_key=key)
            try:
                await self.idempotency.wait(scoped, remaining)
            except Exception as exc:
                logger.warning("idempotency_wait_failed", key=scoped, error=str(exc))
                await asyncio.sleep(min(0.05, max(remaining, 0)))

    async def _lookup(self, scoped: str) -> Optional[dict[str, Any]]:
        try:
            return await self.idempotency.get(scoped)
        except Exception as exc:
            # a lookup failure is a miss; reserve() still guards single execution
            logger.warning("idempotency_lookup_failed", key=scoped, error=str(exc))
            return None

    async def _remember(self, operation: str, scoped: str, result: dict[str, Any], token: str) -> None:
        try:
            await self.idempotency.store(scoped, result, self.idempotency_ttl, token)
        except Exception as exc:
            logger.error("idempotency_store_failed", key=scoped, error=str(exc))
            await self.alerter.notify(
                "idempotency_store_failed",
                severity=AlertSeverity.CRITICAL,
                context={"operation": operation, "key": scoped, "error": str(exc)},
            )

    async def _release(self, scoped: str, token: str) -> None:
        try:
            await self.idempotency.release(scoped, token)
        except Exception as exc:
            logger.error("idempotency_release_failed", key=scoped, error=str(exc))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _call_processor(self, call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.processor_timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Payment processor did not answer within {self.processor_timeout}s"
            ) from None

    async def _audit_attempt(
        self, operation: str, user_id: Optional[str], amount: Optional[int], context: dict[str, Any]
    ) -> None:
        await self.audit.record(
            operation,
            user_id=user_id,
            amount=amount,
            status=AuditStatus.INITIATED,
            metadata=context,
        )

    async def _audit_rejected(
        self,
        operation: str,
        exc: PaymentError,
        user_id: Optional[str],
        amount: Optional[int],
        context: dict[str, Any],
    ) -> None:
        await self.audit.record(
            f"{operation}_rejected",
            user_id=user_id,
            amount=amount,
            status=AuditStatus.REJECTED,
            metadata={**context, "error_code": exc.kind.value, "error": exc.message},
        )
        logger.warning(
            "payment_operation_rejected",
            operation=operation,
            error_code=exc.kind.value,
            user_id=user_id or ANONYMOUS_USER,
            amount=amount,
        )

    async def _failure(
        self,
        operation: str,
        kind: PaymentErrorCode,
        message: str,
        exc: BaseException,
        user_id: Optional[str],
        amount: Optional[int],
        context: dict[str, Any],
    ) -> PaymentError:
        """Audit, log and alert a downstream failure; returns the error to raise."""
        await self.audit.record(
            f"{operation}_failed",
            user_id=user_id,
            amount=amount,
            status=AuditStatus.FAILED,
            metadata={**context, "error": str(exc), "error_type": type(exc).__name__},
        )
        logger.error(
            "payment_operation_failed",
            operation=operation,
            user_id=user_id or ANONYMOUS_USER,
            amount=amount,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        await self.alerter.notify(
            f"{operation}_failed",
            severity=AlertSeverity.CRITICAL,
            context={
                "operation": operation,
                "user_id": user_id,
                "amount": amount,
                "error": str(exc),
                **context,
            },
        )
        return PaymentError(
            message,
            kind,
            details={"operation": operation, "error": str(exc), "error_type": type(exc).__name__},
        )


def _scoped(operation: str, key: str) -> str:
    return f"{operation}:{key}"
