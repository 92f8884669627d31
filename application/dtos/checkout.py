"""
Checkout DTOs (Pydantic v2).

Request models accept both snake_case and camelCase keys (``productId``,
``paymentMethod`` ...) since the storefront frontend posts camelCase.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from domain.common.exceptions import DomainValidationException
from domain.common.phone import PhoneNumber


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckoutItem(_CamelModel):
    product_id: str = Field(min_length=1)
    product_name: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    unit_price: int = Field(gt=0, description="minor currency units")


class CustomerIn(_CamelModel):
    email: EmailStr
    name: str = Field(min_length=1)
    phone: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def _normalize_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        try:
            return PhoneNumber.parse(v).e164
        except DomainValidationException as exc:
            raise ValueError(exc.message) from exc


class AddressIn(_CamelModel):
    street: str = Field(min_length=1)
    number: str = Field(min_length=1)
    neighborhood: str = ""
    city: str = Field(min_length=1)
    state: str = Field(min_length=2, max_length=2)
    cep: str = Field(min_length=8)
    country: str = "BR"
    complement: Optional[str] = None

    @field_validator("cep")
    @classmethod
    def _cep_digits(cls, v: str) -> str:
        digits = "".join(ch for ch in v if ch.isdigit())
        if len(digits) != 8:
            raise ValueError("cep must contain 8 digits")
        return digits


class CheckoutRequest(_CamelModel):
    # empty carts are rejected by the service with a ValidationError
    items: List[CheckoutItem]
    customer: CustomerIn
    address: Optional[AddressIn] = None
    payment_method: Literal["pix", "card"]
    handle: Optional[str] = None


class CheckoutResponse(BaseModel):
    order_id: str
    checkout_url: str
    total: int


class OrderStatusResponse(BaseModel):
    order_id: str
    order_status: str
    payment_status: str
    total: int
    paid_at: Optional[datetime] = None


class OrderItemOut(BaseModel):
    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    subtotal: int


class OrderDetail(BaseModel):
    id: str
    status: str
    total: int
    customer_email: str
    customer_name: str
    customer_phone: Optional[str] = None
    shipping_address: Optional[dict] = None
    items: List[OrderItemOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReconcileResult(BaseModel):
    """Outcome of applying one provider report to a payment."""
    order_id: str
    processed: bool
    already_processed: bool = False
    failed: bool = False
    reason: Optional[str] = None
    payment_status: Optional[str] = None
    order_status: Optional[str] = None


class VerifyPaymentResult(BaseModel):
    order_id: str
    status: str
    already_processed: bool = False
    provider_status: Optional[str] = None
