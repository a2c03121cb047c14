"""
交易仓储实现 - 使用SQLAlchemy实现数据访问

未绑定会话时每次调用使用独立会话与事务；绑定工作单元会话时随其提交或回滚。
同一交易的读-改-写由服务层的按键锁串行化。
"""
from datetime import timezone
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.payment.entity import Transaction
from domain.payment.exceptions import TransactionNotFoundError
from domain.payment.repository import TransactionRepository
from domain.payment.status import TransactionStatus
from infrastructure.models.payment import TransactionModel
from infrastructure.repositories.session_scope import SessionScopedRepository
from shared.codes import BusinessCode


logger = get_logger(__name__)


def _as_utc(value):
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SQLAlchemyTransactionRepository(SessionScopedRepository, TransactionRepository):
    """交易仓储的SQLAlchemy实现"""

    def _to_entity(self, model: TransactionModel) -> Transaction:
        """将数据库模型转换为领域实体"""
        return Transaction(
            id=model.id,
            user_id=model.user_id,
            amount=model.amount,
            currency=model.currency,
            status=TransactionStatus(model.status),
            payment_method=model.payment_method,
            description=model.description or "",
            reference_id=model.reference_id,
            metadata=dict(model.extra_metadata or {}),
            refunded_amount=model.refunded_amount or 0,
            created_at=_as_utc(model.created_at),
            updated_at=_as_utc(model.updated_at),
        )

    def _to_model(self, entity: Transaction) -> TransactionModel:
        """将领域实体转换为数据库模型"""
        return TransactionModel(
            id=entity.id,
            user_id=entity.user_id,
            amount=entity.amount,
            currency=entity.currency.value,
            refunded_amount=entity.refunded_amount,
            status=entity.status.value,
            payment_method=entity.payment_method.value,
            description=entity.description,
            reference_id=entity.reference_id,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            extra_metadata=dict(entity.metadata),
        )

    async def create(self, transaction: Transaction) -> Transaction:
        """创建交易记录"""
        try:
            async with self._writing() as session:
                session.add(self._to_model(transaction))
        except IntegrityError as e:
            logger.warning("transaction_create_conflict", transaction_id=transaction.id)
            raise BusinessException(
                code=BusinessCode.DATABASE_ERROR,
                message=f"Transaction {transaction.id} already exists",
                error_type="DuplicateTransaction",
            ) from e
        logger.info(
            "transaction_created",
            transaction_id=transaction.id,
            user_id=transaction.user_id,
            status=transaction.status.value,
        )
        return transaction

    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        """根据ID获取交易"""
        async with self._reading() as session:
            result = await session.execute(
                select(TransactionModel).where(TransactionModel.id == transaction_id)
            )
            db_txn = result.scalar_one_or_none()
            return self._to_entity(db_txn) if db_txn else None

    async def update(self, transaction: Transaction) -> Transaction:
        """更新交易记录"""
        async with self._writing() as session:
            result = await session.execute(
                select(TransactionModel).where(TransactionModel.id == transaction.id)
            )
            db_txn = result.scalar_one_or_none()
            if not db_txn:
                raise TransactionNotFoundError(transaction.id)

            # 金额、币种、用户在创建后不可变
            db_txn.status = transaction.status.value
            db_txn.refunded_amount = transaction.refunded_amount
            db_txn.reference_id = transaction.reference_id
            db_txn.description = transaction.description
            db_txn.updated_at = transaction.updated_at
            db_txn.extra_metadata = dict(transaction.metadata)

        logger.info(
            "transaction_updated",
            transaction_id=transaction.id,
            status=transaction.status.value,
            refunded_amount=transaction.refunded_amount,
        )
        return transaction

    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[TransactionStatus] = None,
    ) -> List[Transaction]:
        """获取用户的交易列表（按创建时间升序）"""
        query = select(TransactionModel).where(TransactionModel.user_id == user_id)
        if status:
            query = query.where(TransactionModel.status == TransactionStatus(status).value)
        query = query.order_by(TransactionModel.created_at.asc(), TransactionModel.id.asc())
        query = query.offset(skip).limit(limit)

        async with self._reading() as session:
            result = await session.execute(query)
            return [self._to_entity(m) for m in result.scalars().all()]
