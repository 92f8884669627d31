"""
订单仓储接口 - 定义订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Order, OrderItem, OrderStatus


class OrderRepository(ABC):
    """订单仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单（不含行项目），返回带 id 的订单"""
        pass

    @abstractmethod
    async def add_items(self, order_id: str, items: List[OrderItem]) -> List[OrderItem]:
        """为订单批量写入行项目"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单（不加载行项目）"""
        pass

    @abstractmethod
    async def get_with_items(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单及其行项目"""
        pass

    @abstractmethod
    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected_status: Optional[OrderStatus] = None,
    ) -> bool:
        """更新订单状态

        When ``expected_status`` is given the write only happens if the
        stored status still equals it, and an illegal ``expected_status ->
        status`` move raises ``DomainValidationException``. Without it only
        rows in a status that may lead to ``status`` are written. Returns
        whether a row was updated.
        """
        pass

    @abstractmethod
    async def delete(self, order_id: str) -> bool:
        """硬删除订单（级联删除行项目），仅用于下单补偿"""
        pass
