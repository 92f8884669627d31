"""
订单领域实体 - 订单聚合根及其行项目
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"          # awaiting payment
    CONFIRMED = "confirmed"      # paid
    CANCELLED = "cancelled"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


# pending -> confirmed|cancelled; fulfilment continues from confirmed
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.DELIVERED: frozenset(),
}


def check_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise ``DomainValidationException`` unless ``current -> target`` is allowed."""
    if target not in ALLOWED_TRANSITIONS[current]:
        raise DomainValidationException(
            f"Cannot move order from {current.value} to {target.value}",
            field="status",
        )


def statuses_leading_to(target: OrderStatus) -> frozenset[OrderStatus]:
    """Statuses from which ``target`` may be reached."""
    return frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if target in targets)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class ShippingAddress:
    street: str
    number: str
    neighborhood: str
    city: str
    state: str
    zip_code: str
    country: str = "BR"
    complement: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "street": self.street,
            "number": self.number,
            "neighborhood": self.neighborhood,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "complement": self.complement,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["ShippingAddress"]:
        if not data:
            return None
        return cls(
            street=data.get("street", ""),
            number=data.get("number", ""),
            neighborhood=data.get("neighborhood", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            zip_code=data.get("zip_code", ""),
            country=data.get("country") or "BR",
            complement=data.get("complement"),
        )


@dataclass(frozen=True)
class CustomerContact:
    """Contact snapshot captured at checkout time."""
    email: str
    name: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class OrderItem:
    """订单行项目 - 创建后不可变"""

    product_id: str
    product_name: str
    quantity: int
    unit_price: int  # minor currency units, per unit as displayed
    line_total: Optional[int] = None  # share of the order total; unit_price * quantity when unset
    id: Optional[int] = None
    order_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.quantity < 1:
            raise DomainValidationException(
                f"Quantity must be at least 1: {self.quantity}", field="quantity"
            )
        if self.unit_price < 0:
            raise DomainValidationException(
                f"Unit price cannot be negative: {self.unit_price}", field="unit_price"
            )
        if self.line_total is not None and self.line_total < 0:
            raise DomainValidationException(
                f"Line total cannot be negative: {self.line_total}", field="line_total"
            )

    @property
    def subtotal(self) -> int:
        if self.line_total is not None:
            return self.line_total
        return self.unit_price * self.quantity


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. 金额不能为负
    2. 状态只能按 ALLOWED_TRANSITIONS 推进（仓储 update_status 校验），终态不可变
    3. 客户联系信息是下单时的快照
    """

    id: Optional[str]
    user_id: Optional[int]
    status: OrderStatus
    total: int
    customer: CustomerContact
    shipping_address: Optional[ShippingAddress] = None
    items: list[OrderItem] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.total < 0:
            raise DomainValidationException(
                f"Order total cannot be negative: {self.total}", field="total"
            )
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
