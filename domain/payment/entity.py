"""
支付领域实体 - 支付聚合根
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from enum import Enum

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"           # 待支付
    PROCESSING = "processing"     # checkout link issued, waiting for the customer
    COMPLETED = "completed"       # 支付成功
    FAILED = "failed"             # 支付失败
    REFUNDED = "refunded"         # 已退款


class PaymentMethod(str, Enum):
    PIX = "pix"
    CREDIT_CARD = "credit_card"
    BOLETO = "boleto"


FINAL_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.REFUNDED})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Payment:
    """
    支付聚合根 - 管理支付生命周期

    业务规则：
    1. 每个订单同一时间只有一笔非失败的支付
    2. 金额不能为负（最小货币单位）
    3. completed 必须带 transaction_id，且 completed/refunded 为终态
    4. transaction_id 一旦设置不可更改
    """

    id: Optional[str]
    order_id: str
    method: PaymentMethod
    status: PaymentStatus
    amount: int
    provider: str = "infinitepay"

    # provider identifiers
    remote_order_id: Optional[str] = None
    remote_charge_id: Optional[str] = None

    # provider-specific payload
    checkout_url: Optional[str] = None
    pix_qr_code: Optional[str] = None
    pix_qr_code_url: Optional[str] = None
    pix_expires_at: Optional[datetime] = None
    installments: Optional[int] = None

    # settlement
    transaction_id: Optional[str] = None
    payment_method_used: Optional[str] = None
    paid_at: Optional[datetime] = None

    metadata: dict[str, Any] = field(default_factory=dict)
    version: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        if self.amount < 0:
            raise DomainValidationException(
                f"Payment amount cannot be negative: {self.amount}",
                field="amount"
            )
        if self.installments is not None and self.installments < 1:
            raise DomainValidationException(
                f"Invalid installments: {self.installments}",
                field="installments"
            )
        self.paid_at = _ensure_utc(self.paid_at)
        self.pix_expires_at = _ensure_utc(self.pix_expires_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        if self.metadata is None:
            self.metadata = {}

    def is_final_status(self) -> bool:
        """检查是否为终态"""
        return self.status in FINAL_STATUSES

    def is_live(self) -> bool:
        """A live payment blocks creating another one for the same order."""
        return self.status != PaymentStatus.FAILED

    def mark_processing(self, checkout_url: str, remote_order_id: Optional[str] = None) -> None:
        """Checkout link issued by the provider."""
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            raise DomainValidationException(
                f"Cannot move payment from {self.status.value} to processing",
                field="status"
            )
        self.status = PaymentStatus.PROCESSING
        self.checkout_url = checkout_url
        if remote_order_id:
            self.remote_order_id = remote_order_id
        self.updated_at = datetime.now(timezone.utc)

    def mark_completed(
        self,
        transaction_id: str,
        *,
        method_used: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> None:
        """
        标记支付成功

        业务规则：终态不可再变更；transaction_id 必填
        """
        if self.is_final_status():
            raise DomainValidationException(
                f"Cannot complete a payment in status {self.status.value}",
                field="status"
            )
        if not transaction_id:
            raise DomainValidationException(
                "A completed payment requires a transaction id",
                field="transaction_id"
            )
        self.status = PaymentStatus.COMPLETED
        self.transaction_id = transaction_id
        self.payment_method_used = method_used
        self.paid_at = _ensure_utc(paid_at) or datetime.now(timezone.utc)
        self.updated_at = datetime.now(timezone.utc)

    def mark_failed(self, **metadata: Any) -> None:
        """标记支付失败，诊断信息写入 metadata"""
        if self.is_final_status():
            raise DomainValidationException(
                f"Cannot fail a payment in status {self.status.value}",
                field="status"
            )
        self.status = PaymentStatus.FAILED
        self.metadata = {**(self.metadata or {}), **metadata}
        self.updated_at = datetime.now(timezone.utc)
