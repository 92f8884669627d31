"""
Payment DTOs (Pydantic v2) used at application boundaries.

Gateway request/response shapes plus the direct-payment request union.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from domain.common.exceptions import DomainValidationException
from domain.common.phone import PhoneNumber


class CheckoutLinkItem(BaseModel):
    description: str
    quantity: int = Field(gt=0)
    price: int = Field(ge=0)  # minor units per unit


class GatewayCustomer(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None  # E.164
    document: Optional[str] = None  # CPF digits


class GatewayAddress(BaseModel):
    street: str
    number: str
    neighborhood: str = ""
    city: str
    state: str
    zip_code: str
    country: str = "BR"
    complement: Optional[str] = None


class CheckoutLink(BaseModel):
    url: str
    remote_order_id: Optional[str] = None


class PaymentStatusReport(BaseModel):
    """Provider view of a payment, as returned by a status poll."""
    order_id: str
    status: str
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    amount: Optional[int] = None


class PixCharge(BaseModel):
    remote_order_id: str
    remote_charge_id: Optional[str] = None
    amount: int
    status: str
    qr_code: Optional[str] = None
    qr_code_url: Optional[str] = None
    expires_at: Optional[datetime] = None


class CardCharge(BaseModel):
    remote_order_id: str
    remote_charge_id: Optional[str] = None
    amount: int
    installments: int
    status: str


# ---- direct payment request (discriminated by payment_method) ----

class PayerIn(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    document: str = Field(min_length=11, description="CPF")
    phone: str

    @field_validator("document")
    @classmethod
    def _digits_only(cls, v: str) -> str:
        digits = "".join(ch for ch in v if ch.isdigit())
        if len(digits) != 11:
            raise ValueError("document must contain 11 digits")
        return digits

    @field_validator("phone")
    @classmethod
    def _valid_phone(cls, v: str) -> str:
        try:
            return PhoneNumber.parse(v).e164
        except DomainValidationException as exc:
            raise ValueError(exc.message) from exc


class PixPaymentRequest(BaseModel):
    payment_method: Literal["pix"]
    order_id: str
    customer: PayerIn
    address: GatewayAddress


class CardPaymentRequest(BaseModel):
    payment_method: Literal["credit_card"]
    order_id: str
    customer: PayerIn
    address: GatewayAddress
    card_token: str = Field(min_length=1)
    installments: int = 1


DirectPaymentRequest = Annotated[
    Union[PixPaymentRequest, CardPaymentRequest],
    Field(discriminator="payment_method"),
]


class PixPaymentResult(BaseModel):
    type: Literal["pix"] = "pix"
    payment_id: str
    amount: int
    qr_code: Optional[str] = None
    qr_code_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    provider_id: Optional[str] = None
    duplicate: bool = False


class CardPaymentResult(BaseModel):
    type: Literal["credit_card"] = "credit_card"
    payment_id: str
    amount: int
    installments: int
    installments_max: int
    provider_id: Optional[str] = None
    status: str
    duplicate: bool = False


DirectPaymentResult = Union[PixPaymentResult, CardPaymentResult]


class WebhookPayload(BaseModel):
    """InfinitePay webhook body. Unknown keys are kept for logging."""
    order_nsu: str = Field(min_length=1)
    status: str = Field(min_length=1)
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    amount: Optional[int] = None
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(extra="allow")

    def extras(self) -> dict[str, Any]:
        return dict(self.model_extra or {})
