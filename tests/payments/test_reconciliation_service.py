import asyncio

import pytest

from application.dtos.payments import PaymentStatusReport, WebhookPayload
from application.services.reconciliation_service import ReconciliationService
from domain.common.exceptions import (
    ConcurrentUpdateError,
    OrderNotFoundException,
    PaymentNotFoundException,
)
from domain.order.entity import OrderStatus
from domain.payment.entity import PaymentStatus


def _webhook(order_id, status="paid", transaction_id="tx-1", **extra) -> WebhookPayload:
    return WebhookPayload(
        order_nsu=order_id,
        status=status,
        transaction_id=transaction_id,
        payment_method="pix",
        amount=10000,
        **extra,
    )


@pytest.mark.asyncio
async def test_paid_webhook_completes_payment_and_confirms_order(store, uow_factory, checkout_gateway, make_order):
    order, payment = await make_order()
    svc = ReconciliationService(uow_factory, checkout_gateway)

    result = await svc.process_webhook(_webhook(order.id, paid_at="2025-03-01T12:00:00Z"))

    assert result.processed and not result.already_processed
    assert result.order_status == "confirmed"
    stored = store.payments.payments[payment.id]
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.transaction_id == "tx-1"
    assert stored.payment_method_used == "pix"
    assert stored.paid_at.year == 2025
    assert store.orders.orders[order.id].status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
async def test_webhook_replay_is_idempotent(store, uow_factory, checkout_gateway, make_order):
    order, payment = await make_order()
    svc = ReconciliationService(uow_factory, checkout_gateway)

    await svc.process_webhook(_webhook(order.id))
    snapshot = store.payments.payments[payment.id]
    writes = store.payments.update_calls

    for _ in range(3):
        again = await svc.process_webhook(_webhook(order.id))
        assert again.processed and again.already_processed

    assert store.payments.update_calls == writes
    assert store.payments.payments[payment.id].version == snapshot.version
    assert store.payments.payments[payment.id].paid_at == snapshot.paid_at


@pytest.mark.asyncio
async def test_failure_after_completion_is_ignored(store, uow_factory, checkout_gateway, make_order):
    order, payment = await make_order(payment_status=PaymentStatus.COMPLETED, transaction_id="tx-1")
    svc = ReconciliationService(uow_factory, checkout_gateway)

    result = await svc.process_webhook(_webhook(order.id, status="failed", transaction_id="tx-2"))

    assert not result.processed
    assert result.reason == "payment_finalized"
    assert store.payments.payments[payment.id].status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_failed_webhook_keeps_order_open(store, uow_factory, checkout_gateway, make_order):
    order, payment = await make_order()
    svc = ReconciliationService(uow_factory, checkout_gateway)

    result = await svc.process_webhook(_webhook(order.id, status="rejected", transaction_id=None))

    assert result.failed
    assert store.payments.payments[payment.id].metadata["failure_reason"] == "rejected"
    assert store.orders.orders[order.id].status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_unknown_order_reports_payment_not_found(uow_factory, checkout_gateway):
    svc = ReconciliationService(uow_factory, checkout_gateway)
    result = await svc.process_webhook(_webhook("nope"))
    assert not result.processed
    assert result.reason == "payment_not_found"


@pytest.mark.asyncio
async def test_unknown_status_changes_nothing(store, uow_factory, checkout_gateway, make_order):
    order, payment = await make_order()
    svc = ReconciliationService(uow_factory, checkout_gateway)

    result = await svc.process_webhook(_webhook(order.id, status="chargeback_review"))

    assert result.reason == "unknown_status"
    assert store.payments.update_calls == 0


@pytest.mark.asyncio
async def test_late_payment_on_cancelled_order_keeps_order_cancelled(store, uow_factory, checkout_gateway, make_order):
    order, payment = await make_order(status=OrderStatus.CANCELLED, payment_status=PaymentStatus.FAILED)
    svc = ReconciliationService(uow_factory, checkout_gateway)

    result = await svc.process_webhook(_webhook(order.id))

    assert store.payments.payments[payment.id].status == PaymentStatus.COMPLETED
    assert store.orders.orders[order.id].status == OrderStatus.CANCELLED
    assert result.order_status is None


@pytest.mark.asyncio
async def test_webhook_and_verify_race_settles_once(store, uow_factory, checkout_gateway, make_order):
    order, payment = await make_order()
    checkout_gateway.report = PaymentStatusReport(order_id=order.id, status="paid", transaction_id="tx-1")
    svc = ReconciliationService(uow_factory, checkout_gateway)

    webhook_result, verify_result = await asyncio.gather(
        svc.process_webhook(_webhook(order.id)),
        svc.verify_payment(order.id),
    )

    stored = store.payments.payments[payment.id]
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.transaction_id == "tx-1"
    # exactly one writer won; the other re-read and saw its own transaction
    assert stored.version == 1
    assert verify_result.status == "completed"
    assert webhook_result.processed
    assert store.orders.orders[order.id].status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
async def test_conflicts_beyond_retry_budget_raise(store, uow_factory, checkout_gateway, make_order, monkeypatch):
    order, _ = await make_order()

    async def always_conflict(payment, *, expected_version):
        raise ConcurrentUpdateError("Payment", payment.id)

    monkeypatch.setattr(store.payments, "update", always_conflict)
    svc = ReconciliationService(uow_factory, checkout_gateway, max_conflict_retries=2)

    with pytest.raises(ConcurrentUpdateError):
        await svc.process_webhook(_webhook(order.id))


@pytest.mark.asyncio
async def test_verify_short_circuits_completed_payment(uow_factory, checkout_gateway, make_order):
    order, _ = await make_order(payment_status=PaymentStatus.COMPLETED, transaction_id="tx-1")
    svc = ReconciliationService(uow_factory, checkout_gateway)

    result = await svc.verify_payment(order.id)

    assert result.status == "completed" and result.already_processed
    assert checkout_gateway.status_calls == []


@pytest.mark.asyncio
async def test_verify_reports_provider_status_when_still_pending(store, uow_factory, checkout_gateway, make_order):
    order, payment = await make_order()
    checkout_gateway.report = PaymentStatusReport(order_id=order.id, status="pending")
    svc = ReconciliationService(uow_factory, checkout_gateway)

    result = await svc.verify_payment(order.id)

    assert result.status == "processing"
    assert result.provider_status == "pending"
    assert store.payments.payments[payment.id].status == PaymentStatus.PROCESSING


@pytest.mark.asyncio
async def test_verify_raises_for_missing_order_or_payment(uow_factory, checkout_gateway, make_order):
    svc = ReconciliationService(uow_factory, checkout_gateway)
    with pytest.raises(OrderNotFoundException):
        await svc.verify_payment("missing")

    order, _ = await make_order(payment_status=None)
    with pytest.raises(PaymentNotFoundException):
        await svc.verify_payment(order.id)
