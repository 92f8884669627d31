"""
Payment gateway ports (application/ports) exposing replaceable protocols.

Application services depend on these Protocols; infrastructure implements
the adapters (InfinitePay for checkout links, Pagar.me for direct charges).
Every method raises ``GatewayError`` on failure.
"""
from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    CardCharge,
    CheckoutLink,
    CheckoutLinkItem,
    GatewayAddress,
    GatewayCustomer,
    PaymentStatusReport,
    PixCharge,
)


@runtime_checkable
class CheckoutLinkGateway(Protocol):
    """Provider-hosted checkout page. ``order_id`` is the idempotency key."""

    provider: str

    async def create_checkout_link(
        self,
        order_id: str,
        items: List[CheckoutLinkItem],
        customer: Optional[GatewayCustomer] = None,
        address: Optional[GatewayAddress] = None,
        handle: Optional[str] = None,
    ) -> CheckoutLink: ...

    async def check_payment_status(self, order_id: str) -> PaymentStatusReport: ...


@runtime_checkable
class DirectChargeGateway(Protocol):
    """Synchronous PIX / credit card charge creation."""

    provider: str
    max_installments: int

    async def create_pix_charge(
        self, order_id: str, customer: GatewayCustomer, address: GatewayAddress
    ) -> PixCharge: ...

    async def create_card_charge(
        self,
        order_id: str,
        card_token: str,
        installments: int,
        customer: GatewayCustomer,
        address: GatewayAddress,
    ) -> CardCharge: ...
