"""Pytest bootstrap configuration.

Settings are read at import time, so the environment is pinned before any
application module is imported. Fixtures build a fully in-memory payment
service per test; nothing is shared between tests.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("PAYMENT__STORAGE_BACKEND", "memory")
os.environ.setdefault("PAYMENT__IDEMPOTENCY_BACKEND", "memory")
os.environ.setdefault("PAYMENT__PROCESSOR", "fake")
os.environ.setdefault("ALERTING__BACKEND", "log")

import uuid

import pytest

from application.services.audit_service import AuditService
from application.services.payment_service import PaymentService
from infrastructure.cache import InMemoryIdempotencyStore, InMemoryKeyedLock
from infrastructure.external.payments.fake import FakePaymentProcessor
from infrastructure.repositories.memory import (
    InMemoryAuditLogRepository,
    InMemoryTransactionRepository,
    InMemoryWalletRepository,
)
from infrastructure.unit_of_work import InMemoryUnitOfWork


class RecordingAlerter:
    def __init__(self):
        self.alerts = []

    async def notify(self, event, *, severity=None, context=None):
        self.alerts.append({"event": event, "severity": severity, "context": context or {}})


@pytest.fixture
def processor():
    return FakePaymentProcessor()


@pytest.fixture
def alerter():
    return RecordingAlerter()


@pytest.fixture
def audit_repo():
    return InMemoryAuditLogRepository()


@pytest.fixture
def transactions():
    return InMemoryTransactionRepository()


@pytest.fixture
def wallets():
    return InMemoryWalletRepository()


@pytest.fixture
def idempotency():
    return InMemoryIdempotencyStore()


@pytest.fixture
def service(processor, alerter, audit_repo, transactions, wallets, idempotency):
    return PaymentService(
        processor=processor,
        transactions=transactions,
        wallets=wallets,
        unit_of_work=lambda: InMemoryUnitOfWork(transactions, wallets),
        audit=AuditService(audit_repo),
        idempotency=idempotency,
        alerter=alerter,
        locks=InMemoryKeyedLock(),
        processor_timeout=0.5,
        idempotency_wait=2.0,
    )


@pytest.fixture
def user_id():
    return str(uuid.uuid4())
