"""
Payments API routes.

Thin layer: parse headers and bodies into application DTOs, call the
service, wrap the result in the unified envelope. Errors are rendered by the
global handlers in ``core.exceptions``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, List, Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field, StrictInt

from api.dependencies import get_payment_service
from application.dtos.payments import (
    IDEMPOTENCY_KEY_MAX_LENGTH,
    AuditLogView,
    CreatePaymentIntent,
    PaymentIntentResult,
    RefundRequest,
    RefundResult,
    TransactionView,
    UpdateTransactionStatus,
    WalletBalanceView,
    WalletTransactionRequest,
    WalletTransactionResult,
)
from application.services.payment_service import PaymentService
from core.response import Response as ApiResponse, success_response
from domain.payment.entity import PaymentMethod, RefundReason, WalletTransactionType
from domain.payment.money import Currency
from domain.payment.status import TransactionStatus


router = APIRouter(tags=["Payments"])

IdempotencyKey = Annotated[str, Header(
    alias="Idempotency-Key",
    min_length=1,
    max_length=IDEMPOTENCY_KEY_MAX_LENGTH,
    description="Caller supplied token; repeated requests with the same key return the first result",
)]


class CreatePaymentIntentBody(BaseModel):
    amount: StrictInt = Field(description="Amount in minor units (cents)")
    currency: Currency = Currency.USD
    payment_method: PaymentMethod
    customer_id: Optional[str] = None
    description: str
    metadata: Optional[dict[str, Any]] = None


class RefundBody(BaseModel):
    transaction_id: str
    amount: Optional[StrictInt] = Field(default=None, description="Omit to refund the remaining amount")
    reason: RefundReason
    description: Optional[str] = None


class WalletTransactionBody(BaseModel):
    amount: StrictInt
    type: WalletTransactionType
    description: str
    currency: Currency = Currency.USD
    reference_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class StatusUpdateBody(BaseModel):
    new_status: TransactionStatus


@router.post(
    "/payments/intents",
    summary="Create payment intent",
    response_model=ApiResponse[PaymentIntentResult],
)
async def create_payment_intent(
    body: CreatePaymentIntentBody,
    idempotency_key: IdempotencyKey,
    service: PaymentService = Depends(get_payment_service),
):
    req = CreatePaymentIntent(idempotency_key=idempotency_key, **body.model_dump())
    result = await service.create_payment_intent(req)
    return success_response(data=result, message="Payment intent created")


@router.post(
    "/payments/refunds",
    summary="Refund a transaction",
    response_model=ApiResponse[RefundResult],
)
async def process_refund(
    body: RefundBody,
    idempotency_key: IdempotencyKey,
    service: PaymentService = Depends(get_payment_service),
):
    req = RefundRequest(idempotency_key=idempotency_key, **body.model_dump())
    result = await service.process_refund(req)
    return success_response(data=result, message="Refund processed")


@router.post(
    "/wallets/{user_id}/transactions",
    summary="Credit or debit a wallet",
    response_model=ApiResponse[WalletTransactionResult],
)
async def process_wallet_transaction(
    user_id: str,
    body: WalletTransactionBody,
    idempotency_key: IdempotencyKey,
    service: PaymentService = Depends(get_payment_service),
):
    req = WalletTransactionRequest(idempotency_key=idempotency_key, user_id=user_id, **body.model_dump())
    result = await service.process_wallet_transaction(req)
    return success_response(data=result, message="Wallet transaction processed")


@router.get(
    "/wallets/{user_id}",
    summary="Wallet balance",
    response_model=ApiResponse[WalletBalanceView],
)
async def get_wallet_balance(
    user_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    wallet = await service.get_wallet_balance(user_id)
    return success_response(data=WalletBalanceView.from_entity(wallet))


@router.get(
    "/transactions/{transaction_id}",
    summary="Get transaction",
    response_model=ApiResponse[TransactionView],
)
async def get_transaction(
    transaction_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    txn = await service.get_transaction(transaction_id)
    return success_response(data=TransactionView.from_entity(txn))


@router.patch(
    "/transactions/{transaction_id}/status",
    summary="Change transaction status",
    response_model=ApiResponse[TransactionView],
)
async def update_transaction_status(
    transaction_id: str,
    body: StatusUpdateBody,
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    service: PaymentService = Depends(get_payment_service),
):
    cmd = UpdateTransactionStatus(transaction_id=transaction_id, new_status=body.new_status, user_id=user_id)
    txn = await service.update_transaction_status(cmd.transaction_id, cmd.new_status, cmd.user_id)
    return success_response(data=TransactionView.from_entity(txn), message="Transaction status updated")


@router.get(
    "/payments/audit-logs",
    summary="Query audit trail",
    response_model=ApiResponse[List[AuditLogView]],
)
async def get_audit_logs(
    user_id: Optional[str] = Query(default=None),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    action: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=100, ge=1, le=1000),
    service: PaymentService = Depends(get_payment_service),
):
    entries = await service.get_audit_logs(user_id=user_id, start=start, end=end, action=action, limit=limit)
    return success_response(data=[AuditLogView.from_entity(e) for e in entries])
