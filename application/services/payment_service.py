"""
Application service for direct (PIX / credit card) payments.

This class depends only on the DirectChargeGateway port and DTOs. A pending
payment row is reserved before the remote call so the per-order uniqueness
of live payments guards against double charging.
"""
from __future__ import annotations

from typing import Callable, Tuple, Union, assert_never

from application.dtos.payments import (
    CardPaymentRequest,
    CardPaymentResult,
    DirectPaymentResult,
    GatewayCustomer,
    PixPaymentRequest,
    PixPaymentResult,
)
from application.ports.payment_gateway import DirectChargeGateway
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    OrderNotFoundException,
    OrderNotPayableException,
    PaymentAlreadyExistsException,
    PaymentNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus
from domain.payment.entity import Payment, PaymentMethod, PaymentStatus


logger = get_logger(__name__)


class DirectPaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: DirectChargeGateway,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway

    async def create_payment(
        self, req: Union[PixPaymentRequest, CardPaymentRequest]
    ) -> Tuple[DirectPaymentResult, bool]:
        """Create a direct charge. Returns ``(result, created)``.

        ``created`` is False when a live payment already existed for the
        order; that payment is returned unchanged.
        """
        if isinstance(req, CardPaymentRequest):
            self._check_installments(req.installments)

        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(req.order_id)
            if order is None:
                raise OrderNotFoundException(req.order_id)
            existing = await uow.payment_repository.get_by_order_id(req.order_id)

        if existing is not None and existing.is_live():
            logger.info("direct_payment_duplicate", order_id=req.order_id, payment_id=existing.id)
            return self._to_result(existing, duplicate=True), False

        if order.status != OrderStatus.PENDING:
            raise OrderNotPayableException(order.id, order.status.value)

        try:
            async with self._uow_factory() as uow:
                payment = await uow.payment_repository.create(
                    Payment(
                        id=None,
                        order_id=order.id,
                        method=PaymentMethod(req.payment_method),
                        status=PaymentStatus.PENDING,
                        amount=order.total,
                        provider=self.gateway.provider,
                        installments=req.installments if isinstance(req, CardPaymentRequest) else None,
                    )
                )
        except PaymentAlreadyExistsException:
            # lost the race to a concurrent request for the same order
            async with self._uow_factory(readonly=True) as uow:
                existing = await uow.payment_repository.get_by_order_id(req.order_id)
            if existing is None:
                raise PaymentNotFoundException(req.order_id)
            logger.info("direct_payment_duplicate", order_id=req.order_id, payment_id=existing.id)
            return self._to_result(existing, duplicate=True), False

        customer = GatewayCustomer(
            name=req.customer.name,
            email=str(req.customer.email),
            phone=req.customer.phone,
            document=req.customer.document,
        )
        try:
            if isinstance(req, PixPaymentRequest):
                pix = await self.gateway.create_pix_charge(order.id, customer, req.address)
                payment.remote_order_id = pix.remote_order_id
                payment.remote_charge_id = pix.remote_charge_id
                payment.amount = pix.amount
                payment.pix_qr_code = pix.qr_code
                payment.pix_qr_code_url = pix.qr_code_url
                payment.pix_expires_at = pix.expires_at
                charge_status = pix.status
            elif isinstance(req, CardPaymentRequest):
                card = await self.gateway.create_card_charge(
                    order.id, req.card_token, req.installments, customer, req.address
                )
                payment.remote_order_id = card.remote_order_id
                payment.remote_charge_id = card.remote_charge_id
                payment.amount = card.amount
                payment.installments = card.installments
                charge_status = card.status
            else:
                assert_never(req)
        except Exception as exc:
            await self._fail(payment, exc)
            raise

        await self._settle(payment, charge_status)
        logger.info(
            "direct_payment_created",
            order_id=order.id,
            payment_id=payment.id,
            method=payment.method.value,
            status=payment.status.value,
        )
        return self._to_result(payment), True

    def _check_installments(self, installments: int) -> None:
        if installments < 1 or installments > self.gateway.max_installments:
            raise DomainValidationException(
                f"Invalid installments, allowed 1-{self.gateway.max_installments}",
                field="installments",
                details={"installments": installments, "max": self.gateway.max_installments},
            )

    async def _settle(self, payment: Payment, charge_status: str) -> None:
        """Persist the charge outcome; a paid card charge confirms the order."""
        expected = payment.version
        confirm_order = False
        if charge_status == PaymentStatus.COMPLETED.value:
            payment.mark_completed(
                payment.remote_charge_id or payment.remote_order_id or "",
                method_used=payment.method.value,
            )
            confirm_order = True
        elif charge_status == PaymentStatus.FAILED.value:
            payment.mark_failed(failure_reason=charge_status)
        else:
            payment.status = PaymentStatus.PROCESSING

        async with self._uow_factory() as uow:
            await uow.payment_repository.update(payment, expected_version=expected)
            if confirm_order:
                await uow.order_repository.update_status(
                    payment.order_id, OrderStatus.CONFIRMED, expected_status=OrderStatus.PENDING
                )

    async def _fail(self, payment: Payment, error: Exception) -> None:
        logger.warning(
            "direct_payment_failed",
            order_id=payment.order_id,
            payment_id=payment.id,
            error=str(error),
        )
        expected = payment.version
        payment.mark_failed(error=str(error))
        async with self._uow_factory() as uow:
            await uow.payment_repository.update(payment, expected_version=expected)

    def _to_result(self, payment: Payment, *, duplicate: bool = False) -> DirectPaymentResult:
        if payment.method == PaymentMethod.PIX:
            return PixPaymentResult(
                payment_id=payment.id,
                amount=payment.amount,
                qr_code=payment.pix_qr_code,
                qr_code_url=payment.pix_qr_code_url,
                expires_at=payment.pix_expires_at,
                provider_id=payment.remote_order_id,
                duplicate=duplicate,
            )
        return CardPaymentResult(
            payment_id=payment.id,
            amount=payment.amount,
            installments=payment.installments or 1,
            installments_max=self.gateway.max_installments,
            provider_id=payment.remote_order_id,
            status=payment.status.value,
            duplicate=duplicate,
        )
