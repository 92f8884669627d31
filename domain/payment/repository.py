"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Payment


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录

        Raises PaymentAlreadyExistsException if the order already has a
        live (non-failed) payment.
        """
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        """获取订单当前的支付：优先非失败的记录，否则最近一笔"""
        pass

    @abstractmethod
    async def update(self, payment: Payment, *, expected_version: int) -> Payment:
        """条件更新支付记录

        Writes only if the stored version equals ``expected_version`` and
        bumps it. Raises ConcurrentUpdateError otherwise.
        """
        pass
