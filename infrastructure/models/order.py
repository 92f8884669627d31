"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, JSON, String
from sqlalchemy.orm import relationship

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, comment="订单ID (UUID)")
    user_id = Column(Integer, nullable=True, index=True, comment="用户ID，匿名下单为空")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="订单状态: pending/confirmed/cancelled/shipped/delivered"
    )
    total = Column(Integer, nullable=False, comment="订单总额（最小货币单位）")

    # 下单时的客户联系信息快照
    customer_email = Column(String(255), nullable=False, comment="客户邮箱")
    customer_name = Column(String(255), nullable=False, comment="客户姓名")
    customer_phone = Column(String(20), nullable=True, comment="客户电话 E.164")

    shipping_address = Column(JSON, nullable=True, comment="收货地址")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )

    def __repr__(self):
        return f"<OrderModel(id='{self.id}', status='{self.status}', total={self.total})>"


class OrderItemModel(Base):
    """订单行项目"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="关联订单ID"
    )
    product_id = Column(String(100), nullable=False, comment="商品ID")
    product_name = Column(String(255), nullable=False, comment="商品名称快照")
    quantity = Column(Integer, nullable=False, comment="数量")
    unit_price = Column(Integer, nullable=False, comment="展示单价（最小货币单位）")
    line_total = Column(Integer, nullable=False, comment="行金额，各行之和等于订单总额")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    order = relationship("OrderModel", back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order_product", "order_id", "product_id"),
    )

    def __repr__(self):
        return f"<OrderItemModel(id={self.id}, order_id='{self.order_id}', quantity={self.quantity})>"
