"""
Reconciliation service: the one place that applies provider outcomes.

Both the webhook worker and the verify-payment endpoint end up in
``_reconcile``. Payment writes are version-checked; a lost race re-reads the
payment and decides again.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from application.dtos.checkout import ReconcileResult, VerifyPaymentResult
from application.dtos.payments import WebhookPayload
from application.ports.payment_gateway import CheckoutLinkGateway
from core.logging_config import get_logger
from domain.common.exceptions import (
    ConcurrentUpdateError,
    OrderNotFoundException,
    PaymentNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus
from domain.payment.entity import PaymentStatus
from domain.payment.reconciler import ReportedOutcome, decide


logger = get_logger(__name__)


class ReconciliationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: CheckoutLinkGateway,
        *,
        max_conflict_retries: int = 3,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.max_conflict_retries = max_conflict_retries

    async def process_webhook(self, payload: WebhookPayload) -> ReconcileResult:
        logger.info("webhook_processing", order_id=payload.order_nsu, status=payload.status)
        outcome = ReportedOutcome(
            status=payload.status,
            transaction_id=payload.transaction_id,
            payment_method=payload.payment_method,
            paid_at=payload.paid_at,
        )
        return await self._reconcile(payload.order_nsu, outcome, source="webhook")

    async def verify_payment(self, order_id: str) -> VerifyPaymentResult:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            payment = await uow.payment_repository.get_by_order_id(order_id)
            if payment is None:
                raise PaymentNotFoundException(order_id)

        if payment.status == PaymentStatus.COMPLETED:
            return VerifyPaymentResult(
                order_id=order_id,
                status=PaymentStatus.COMPLETED.value,
                already_processed=True,
            )

        report = await self.gateway.check_payment_status(order_id)
        result = await self._reconcile(
            order_id,
            ReportedOutcome(
                status=report.status,
                transaction_id=report.transaction_id,
                payment_method=report.payment_method,
                paid_at=report.paid_at,
            ),
            source="verify",
        )
        return VerifyPaymentResult(
            order_id=order_id,
            status=result.payment_status or payment.status.value,
            already_processed=result.already_processed,
            provider_status=report.status,
        )

    async def _reconcile(self, order_id: str, outcome: ReportedOutcome, *, source: str) -> ReconcileResult:
        for attempt in range(1, self.max_conflict_retries + 1):
            try:
                return await self._reconcile_once(order_id, outcome, source=source)
            except ConcurrentUpdateError:
                logger.info(
                    "reconcile_conflict_retry",
                    order_id=order_id,
                    source=source,
                    attempt=attempt,
                )
        logger.error("reconcile_conflict_exhausted", order_id=order_id, source=source)
        raise ConcurrentUpdateError("Payment", order_id)

    async def _reconcile_once(self, order_id: str, outcome: ReportedOutcome, *, source: str) -> ReconcileResult:
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_order_id(order_id)
            if payment is None:
                logger.warning("reconcile_payment_not_found", order_id=order_id, source=source)
                return ReconcileResult(order_id=order_id, processed=False, reason="payment_not_found")

            decision = decide(payment, outcome)
            if not decision.write:
                logger.info(
                    "reconcile_noop",
                    order_id=order_id,
                    source=source,
                    payment_status=payment.status.value,
                    reported_status=outcome.normalized_status,
                    reason=decision.reason,
                    already_processed=decision.already_processed,
                )
                return ReconcileResult(
                    order_id=order_id,
                    processed=decision.processed,
                    already_processed=decision.already_processed,
                    failed=decision.failed,
                    reason=decision.reason,
                    payment_status=payment.status.value,
                )

            updated = decision.apply(payment)
            if updated.status == PaymentStatus.COMPLETED and updated.paid_at is None:
                updated.paid_at = datetime.now(timezone.utc)
            await uow.payment_repository.update(updated, expected_version=payment.version)

            order_status = None
            if decision.order_status is not None:
                moved = await uow.order_repository.update_status(
                    order_id, decision.order_status, expected_status=OrderStatus.PENDING
                )
                if moved:
                    order_status = decision.order_status.value
                else:
                    # e.g. a late payment on an order that was already cancelled
                    logger.warning(
                        "reconcile_order_not_pending",
                        order_id=order_id,
                        payment_id=payment.id,
                        target_status=decision.order_status.value,
                    )

        logger.info(
            "reconcile_applied",
            order_id=order_id,
            source=source,
            payment_id=updated.id,
            payment_status=updated.status.value,
            order_status=order_status,
        )
        return ReconcileResult(
            order_id=order_id,
            processed=decision.processed,
            failed=decision.failed,
            payment_status=updated.status.value,
            order_status=order_status,
        )
