"""
服务容器 - 组合根

根据配置选择适配器（内存/SQLAlchemy 存储、内存/Redis 幂等与锁、
Fake/Stripe 处理器、日志/Celery 告警），构建 PaymentService，
并在关闭时释放其持有的连接。所有状态均归属容器实例，不使用模块级单例。
"""
from __future__ import annotations

from functools import partial
from typing import Optional

from application.ports.alerting import Alerter
from application.ports.payment_gateway import PaymentProcessor
from application.services.audit_service import AuditService
from application.services.payment_service import PaymentService
from core.config import Settings, settings as default_settings
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings as default_payment_settings
from infrastructure.alerting import CeleryAlerter, LoggingAlerter
from infrastructure.cache import (
    InMemoryIdempotencyStore,
    InMemoryKeyedLock,
    RedisIdempotencyStore,
    RedisKeyedLock,
    close_redis_client,
    create_redis_client,
)
from infrastructure.database import create_engine, create_session_factory, create_tables
from infrastructure.external.payments import get_payment_processor
from infrastructure.repositories.audit_log_repository import SQLAlchemyAuditLogRepository
from infrastructure.repositories.memory import (
    InMemoryAuditLogRepository,
    InMemoryTransactionRepository,
    InMemoryWalletRepository,
)
from infrastructure.repositories.transaction_repository import SQLAlchemyTransactionRepository
from infrastructure.repositories.wallet_repository import SQLAlchemyWalletRepository
from infrastructure.unit_of_work import InMemoryUnitOfWork, SQLAlchemyUnitOfWork


logger = get_logger(__name__)


class ServiceContainer:
    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        pay_settings: Optional[PaymentSettings] = None,
        *,
        processor: Optional[PaymentProcessor] = None,
        alerter: Optional[Alerter] = None,
    ) -> None:
        self.settings = app_settings or default_settings
        self.payment_settings = pay_settings or default_payment_settings
        self._processor_override = processor
        self._alerter_override = alerter
        self.engine = None
        self.redis = None
        self.payment_service: Optional[PaymentService] = None

    async def start(self) -> PaymentService:
        cfg = self.payment_settings

        if cfg.storage_backend == "sqlalchemy":
            self.engine = create_engine(self.settings.database.url)
            await create_tables(self.engine)
            session_factory = create_session_factory(self.engine)
            transactions = SQLAlchemyTransactionRepository(session_factory)
            wallets = SQLAlchemyWalletRepository(session_factory)
            audit_repo = SQLAlchemyAuditLogRepository(session_factory)
            unit_of_work = partial(SQLAlchemyUnitOfWork, session_factory)
        elif cfg.storage_backend == "memory":
            transactions = InMemoryTransactionRepository()
            wallets = InMemoryWalletRepository()
            audit_repo = InMemoryAuditLogRepository()
            unit_of_work = partial(InMemoryUnitOfWork, transactions, wallets)
        else:
            raise ValueError(f"Unsupported storage backend: {cfg.storage_backend}")

        if cfg.idempotency_backend == "redis":
            self.redis = await create_redis_client(self.settings.redis.url)
            namespace = self.settings.redis.namespace
            idempotency = RedisIdempotencyStore(
                self.redis,
                namespace=namespace,
                default_ttl=cfg.idempotency_ttl_seconds,
                reservation_ttl=max(int(cfg.processor_timeout_seconds * 3), 30),
            )
            locks = RedisKeyedLock(self.redis, namespace=namespace)
        elif cfg.idempotency_backend == "memory":
            idempotency = InMemoryIdempotencyStore(cfg.idempotency_ttl_seconds)
            locks = InMemoryKeyedLock()
        else:
            raise ValueError(f"Unsupported idempotency backend: {cfg.idempotency_backend}")

        alerter = self._alerter_override
        if alerter is None:
            alerter = CeleryAlerter() if self.settings.alerting.backend == "celery" else LoggingAlerter()

        self.payment_service = PaymentService(
            processor=self._processor_override or get_payment_processor(cfg.processor),
            transactions=transactions,
            wallets=wallets,
            unit_of_work=unit_of_work,
            audit=AuditService(audit_repo),
            idempotency=idempotency,
            alerter=alerter,
            locks=locks,
            processor_timeout=cfg.processor_timeout_seconds,
            idempotency_wait=cfg.idempotency_wait_seconds,
            idempotency_ttl=cfg.idempotency_ttl_seconds,
        )
        logger.info(
            "payment_service_started",
            storage=cfg.storage_backend,
            idempotency=cfg.idempotency_backend,
            processor=cfg.processor,
            alerting=self.settings.alerting.backend,
        )
        return self.payment_service

    async def aclose(self) -> None:
        if self.payment_service is not None:
            await self.payment_service.aclose()
        await close_redis_client(self.redis)
        self.redis = None
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
        logger.info("payment_service_stopped")
