"""Unit of Work 抽象定义

Application services open one unit of work per store step
(``async with uow_factory() as uow``); leaving the block commits, an
exception rolls back. ``readonly=True`` never commits.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界：订单与支付仓储共享同一事务"""

    order_repository: OrderRepository
    payment_repository: PaymentRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.order_repository = None  # type: ignore[assignment]
        self.payment_repository = None  # type: ignore[assignment]

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.rollback()
        elif not self._readonly and not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
