"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

import httpx

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import CheckoutLinkGateway, DirectChargeGateway


def get_checkout_gateway(
    settings: Optional[PaymentSettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CheckoutLinkGateway:
    from .infinitepay_client import InfinitePayClient
    return InfinitePayClient(settings or payment_settings, transport=transport)


def get_direct_charge_gateway(
    settings: Optional[PaymentSettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DirectChargeGateway:
    from .pagarme_client import PagarmeClient
    return PagarmeClient(settings or payment_settings, transport=transport)
