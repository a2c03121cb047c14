"""
钱包仓储实现 - 乐观锁（version 列）保证并发写入不丢失更新
"""
from datetime import timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from core.logging_config import get_logger
from domain.common.exceptions import ConcurrentUpdateException
from domain.payment.entity import WalletBalance
from domain.payment.repository import WalletRepository
from infrastructure.models.payment import WalletBalanceModel
from infrastructure.repositories.session_scope import SessionScopedRepository


logger = get_logger(__name__)


class SQLAlchemyWalletRepository(SessionScopedRepository, WalletRepository):
    """钱包仓储的SQLAlchemy实现"""

    @staticmethod
    def _to_entity(model: WalletBalanceModel) -> WalletBalance:
        updated_at = model.updated_at
        if updated_at is not None and updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return WalletBalance(
            user_id=model.user_id,
            available_balance=model.available_balance,
            pending_balance=model.pending_balance,
            currency=model.currency,
            updated_at=updated_at,
            version=model.version,
        )

    async def get(self, user_id: str) -> Optional[WalletBalance]:
        async with self._reading() as session:
            result = await session.execute(
                select(WalletBalanceModel).where(WalletBalanceModel.user_id == user_id)
            )
            model = result.scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def save(self, wallet: WalletBalance) -> WalletBalance:
        """
        写入钱包余额

        version == 0 表示调用方读到的是尚未落库的新钱包，执行插入；
        否则仅当库中版本与读取时一致才更新，不一致抛 ConcurrentUpdateException。
        """
        try:
            async with self._writing() as session:
                if wallet.version == 0:
                    session.add(WalletBalanceModel(
                        user_id=wallet.user_id,
                        available_balance=wallet.available_balance,
                        pending_balance=wallet.pending_balance,
                        currency=wallet.currency.value,
                        version=1,
                        updated_at=wallet.updated_at,
                    ))
                    await session.flush()
                else:
                    result = await session.execute(
                        update(WalletBalanceModel)
                        .where(
                            WalletBalanceModel.user_id == wallet.user_id,
                            WalletBalanceModel.version == wallet.version,
                        )
                        .values(
                            available_balance=wallet.available_balance,
                            pending_balance=wallet.pending_balance,
                            currency=wallet.currency.value,
                            updated_at=wallet.updated_at,
                            version=WalletBalanceModel.version + 1,
                        )
                    )
                    if result.rowcount == 0:
                        logger.warning(
                            "wallet_version_conflict",
                            user_id=wallet.user_id,
                            expected_version=wallet.version,
                        )
                        raise ConcurrentUpdateException("wallet", wallet.user_id)
        except IntegrityError as e:
            logger.warning("wallet_insert_conflict", user_id=wallet.user_id)
            raise ConcurrentUpdateException("wallet", wallet.user_id) from e

        wallet.version += 1
        logger.debug(
            "wallet_saved",
            user_id=wallet.user_id,
            available_balance=wallet.available_balance,
            version=wallet.version,
        )
        return wallet
