"""
Pagar.me v5 Orders API adapter (PIX and credit card).

Authentication is HTTP basic with the secret key as username and an empty
password. ``code`` carries the merchant order id for idempotency.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import httpx

from application.dtos.payments import CardCharge, GatewayAddress, GatewayCustomer, PixCharge
from core.settings import PaymentSettings
from domain.common.exceptions import DomainValidationException, GatewayError
from domain.common.phone import PhoneNumber
from infrastructure.external.payments.base import BasePaymentClient


PRICE_PIX = 15990
PRICE_CARD = 18000
MAX_INSTALLMENTS = 10
PIX_EXPIRES_IN = 1800
STATEMENT_DESCRIPTOR = "ECOMMERCE"

ORDERS_ENDPOINT = "/orders"


def _digits(value: str) -> str:
    return "".join(ch for ch in value if ch.isdigit())


def validate_installments(installments: int) -> int:
    if installments < 1 or installments > MAX_INSTALLMENTS:
        raise DomainValidationException(
            f"Invalid installments, allowed 1-{MAX_INSTALLMENTS}",
            field="installments",
            details={"installments": installments, "max": MAX_INSTALLMENTS},
        )
    return installments


class PagarmeClient(BasePaymentClient):
    provider = "pagarme"
    max_installments = MAX_INSTALLMENTS

    def __init__(
        self,
        settings: PaymentSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=None,
    ):
        super().__init__(
            base_url=settings.pagarme.api_url,
            settings=settings,
            transport=transport,
            sleep=sleep,
        )
        self._secret_key = settings.pagarme.secret_key
        if self._secret_key:
            self._api.set_basic_auth(self._secret_key, "")

    def _ensure_configured(self) -> None:
        if not self._secret_key:
            raise GatewayError(
                "Pagar.me secret key is not configured",
                provider=self.provider,
                retryable=False,
            )

    @staticmethod
    def _customer_payload(customer: GatewayCustomer) -> dict[str, Any]:
        if not customer.phone:
            raise DomainValidationException("Customer phone is required", field="phone")
        if not customer.document:
            raise DomainValidationException("Customer document is required", field="document")
        phone = PhoneNumber.parse(customer.phone)
        return {
            "name": customer.name,
            "email": customer.email,
            "type": "individual",
            "document": _digits(customer.document),
            "phones": {
                "mobile_phone": {
                    "country_code": phone.country_code,
                    "area_code": phone.area_code,
                    "number": phone.number,
                }
            },
        }

    @staticmethod
    def _address_payload(address: GatewayAddress) -> dict[str, Any]:
        return {
            "line_1": f"{address.number}, {address.street}, {address.neighborhood}",
            "zip_code": _digits(address.zip_code),
            "city": address.city,
            "state": address.state,
            "country": address.country,
        }

    @staticmethod
    def _items(order_id: str, amount: int) -> list[dict[str, Any]]:
        return [{"amount": amount, "description": f"Pedido #{order_id}", "quantity": 1}]

    def _first_charge(self, body: dict[str, Any], operation: str) -> dict[str, Any]:
        charges = body.get("charges")
        if not body.get("id") or not isinstance(charges, list) or not charges or not isinstance(charges[0], dict):
            raise self._malformed(operation, "missing order id or charges")
        return charges[0]

    async def create_pix_charge(
        self, order_id: str, customer: GatewayCustomer, address: GatewayAddress
    ) -> PixCharge:
        self._ensure_configured()
        payload = {
            "code": order_id,
            "items": self._items(order_id, PRICE_PIX),
            "customer": self._customer_payload(customer),
            "payments": [{"payment_method": "pix", "pix": {"expires_in": PIX_EXPIRES_IN}}],
            "shipping": {"address": self._address_payload(address)},
        }
        self._log("gateway_pix_charge_requested", order_id=order_id, amount=PRICE_PIX)

        body = await self._post(ORDERS_ENDPOINT, payload, operation="create_pix_charge")
        charge = self._first_charge(body, "create_pix_charge")
        transaction = charge.get("last_transaction") or {}

        expires_at = transaction.get("expires_at")
        result = PixCharge(
            remote_order_id=str(body["id"]),
            remote_charge_id=charge.get("id"),
            amount=int(charge.get("amount") or PRICE_PIX),
            status=self._map_status(str(charge.get("status") or "pending")),
            qr_code=transaction.get("qr_code"),
            qr_code_url=transaction.get("qr_code_url"),
            expires_at=datetime.fromisoformat(expires_at.replace("Z", "+00:00")) if expires_at else None,
        )
        self._log("gateway_pix_charge_created", order_id=order_id, remote_order_id=result.remote_order_id)
        return result

    async def create_card_charge(
        self,
        order_id: str,
        card_token: str,
        installments: int,
        customer: GatewayCustomer,
        address: GatewayAddress,
    ) -> CardCharge:
        validate_installments(installments)
        self._ensure_configured()
        payload = {
            "code": order_id,
            "items": self._items(order_id, PRICE_CARD),
            "customer": self._customer_payload(customer),
            "payments": [
                {
                    "payment_method": "credit_card",
                    "credit_card": {
                        "installments": installments,
                        "statement_descriptor": STATEMENT_DESCRIPTOR,
                        "card_token": card_token,
                        "billing_address": self._address_payload(address),
                    },
                }
            ],
        }
        self._log("gateway_card_charge_requested", order_id=order_id, amount=PRICE_CARD, installments=installments)

        body = await self._post(ORDERS_ENDPOINT, payload, operation="create_card_charge")
        charge = self._first_charge(body, "create_card_charge")

        result = CardCharge(
            remote_order_id=str(body["id"]),
            remote_charge_id=charge.get("id"),
            amount=int(charge.get("amount") or PRICE_CARD),
            installments=int(charge.get("installments") or installments),
            status=self._map_status(str(charge.get("status") or "pending")),
        )
        self._log("gateway_card_charge_created", order_id=order_id, status=result.status)
        return result
