"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text, text

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键
    id = Column(String(36), primary_key=True, comment="支付ID (UUID)")

    # 订单信息：每个订单只能有一笔非失败的支付，见下方部分唯一索引
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
        comment="订单ID"
    )

    method = Column(String(20), nullable=False, comment="支付方式: pix/credit_card/boleto")
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/processing/completed/failed/refunded"
    )
    amount = Column(Integer, nullable=False, comment="支付金额（最小货币单位）")

    # 支付渠道信息
    provider = Column(String(50), nullable=False, comment="支付提供商: infinitepay/pagarme")
    remote_order_id = Column(String(200), nullable=True, comment="渠道订单ID")
    remote_charge_id = Column(String(200), nullable=True, comment="渠道扣款ID")

    checkout_url = Column(Text, nullable=True, comment="收银台链接")
    pix_qr_code = Column(Text, nullable=True, comment="PIX 码")
    pix_qr_code_url = Column(Text, nullable=True, comment="PIX 二维码图片")
    pix_expires_at = Column(DateTime(timezone=True), nullable=True, comment="PIX 过期时间")
    installments = Column(Integer, nullable=True, comment="分期数")

    # 结算信息
    transaction_id = Column(String(200), nullable=True, index=True, comment="渠道交易号")
    payment_method_used = Column(String(50), nullable=True, comment="渠道回报的实际支付方式")
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")

    # 元数据（JSON格式，使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    # 乐观锁版本号
    version = Column(Integer, nullable=False, default=0, comment="乐观锁版本号")

    # 时间戳
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

    __table_args__ = (
        Index(
            "uq_payments_live_order",
            "order_id",
            unique=True,
            postgresql_where=text("status <> 'failed'"),
            sqlite_where=text("status <> 'failed'"),
        ),
        Index("ix_payments_provider_remote", "provider", "remote_order_id"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id='{self.id}', order_id='{self.order_id}', "
            f"provider='{self.provider}', amount={self.amount}, status='{self.status}')>"
        )
