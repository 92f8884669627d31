"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """一个 AsyncSession 对应一个事务；外部传入的 session 不在此关闭"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._owns_session = session is None
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.order_repository = SQLAlchemyOrderRepository(self.session)
        self.payment_repository = SQLAlchemyPaymentRepository(self.session)
        # 只读模式依赖 autobegin，退出时直接关闭
        if not self._readonly and not self.session.in_transaction():
            await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self._owns_session and self.session is not None:
                await self.session.close()
                self.session = None
            self.order_repository = None  # type: ignore[assignment]
            self.payment_repository = None  # type: ignore[assignment]

    async def commit(self) -> None:
        if not self._readonly and self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


def sqlalchemy_uow_factory(session_factory: Callable[[], AsyncSession]) -> Callable[..., SQLAlchemyUnitOfWork]:
    """返回 ``uow_factory(readonly=False)``，供应用服务每次操作新建事务"""

    def _factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory, readonly=readonly)

    return _factory
