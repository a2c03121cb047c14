"""
仓储会话作用域

仓储既可以每次调用自开会话与事务（独立提交），也可以绑定到工作单元
持有的会话上（由工作单元统一提交或回滚）。
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class SessionScopedRepository:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        *,
        session: Optional[AsyncSession] = None,
    ) -> None:
        if session_factory is None and session is None:
            raise ValueError("Either session_factory or session is required")
        self._session_factory = session_factory
        self._session = session

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            yield self._session
            return
        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            # 绑定会话：只 flush 以暴露约束冲突，提交交给工作单元
            yield self._session
            await self._session.flush()
            return
        async with self._session_factory() as session, session.begin():
            yield session
