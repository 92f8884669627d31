"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from domain.order.entity import (
    CustomerContact,
    Order,
    OrderItem,
    OrderStatus,
    ShippingAddress,
    check_transition,
    statuses_leading_to,
)
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderItemModel, OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _item_to_entity(model: OrderItemModel) -> OrderItem:
        return OrderItem(
            id=model.id,
            order_id=model.order_id,
            product_id=model.product_id,
            product_name=model.product_name,
            quantity=model.quantity,
            unit_price=model.unit_price,
            line_total=model.line_total,
            created_at=model.created_at,
        )

    def _to_entity(self, model: OrderModel, items: Optional[List[OrderItemModel]] = None) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            user_id=model.user_id,
            status=OrderStatus(model.status),
            total=model.total,
            customer=CustomerContact(
                email=model.customer_email,
                name=model.customer_name,
                phone=model.customer_phone,
            ),
            shipping_address=ShippingAddress.from_dict(model.shipping_address),
            items=[self._item_to_entity(i) for i in (items or [])],
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, order: Order) -> Order:
        """创建订单"""
        now = datetime.now(timezone.utc)
        db_order = OrderModel(
            id=order.id or str(uuid.uuid4()),
            user_id=order.user_id,
            status=order.status.value,
            total=order.total,
            customer_email=order.customer.email,
            customer_name=order.customer.name,
            customer_phone=order.customer.phone,
            shipping_address=order.shipping_address.to_dict() if order.shipping_address else None,
            created_at=order.created_at or now,
            updated_at=order.updated_at or now,
        )
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info("order_created", order_id=db_order.id, total=db_order.total)
        return self._to_entity(db_order)

    async def add_items(self, order_id: str, items: List[OrderItem]) -> List[OrderItem]:
        """批量写入行项目"""
        models = [
            OrderItemModel(
                order_id=order_id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.subtotal,
            )
            for item in items
        ]
        self.session.add_all(models)
        await self.session.flush()
        return [self._item_to_entity(m) for m in models]

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单"""
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order_id)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_with_items(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单及行项目"""
        result = await self.session.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == order_id)
        )
        db_order = result.scalar_one_or_none()
        if db_order is None:
            return None
        items = sorted(db_order.items, key=lambda m: m.id or 0)
        return self._to_entity(db_order, items)

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected_status: Optional[OrderStatus] = None,
    ) -> bool:
        """更新订单状态（可选条件：当前状态等于 expected_status）

        非法迁移在 expected_status 给定时直接抛 DomainValidationException；
        未给定时只更新处于合法前置状态的行。
        """
        stmt = update(OrderModel).where(OrderModel.id == order_id)
        if expected_status is not None:
            check_transition(expected_status, status)
            stmt = stmt.where(OrderModel.status == expected_status.value)
        else:
            stmt = stmt.where(OrderModel.status.in_([s.value for s in statuses_leading_to(status)]))
        result = await self.session.execute(
            stmt.values(status=status.value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount == 1
        if updated:
            logger.info("order_status_updated", order_id=order_id, status=status.value)
        return updated

    async def delete(self, order_id: str) -> bool:
        """硬删除订单及其行项目"""
        await self.session.execute(
            delete(OrderItemModel).where(OrderItemModel.order_id == order_id)
        )
        result = await self.session.execute(
            delete(OrderModel).where(OrderModel.id == order_id)
        )
        deleted = result.rowcount == 1
        if deleted:
            logger.info("order_deleted", order_id=order_id)
        return deleted
