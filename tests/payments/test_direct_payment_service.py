import pytest
from pydantic import TypeAdapter, ValidationError

from application.dtos.payments import (
    CardPaymentRequest,
    CardPaymentResult,
    DirectPaymentRequest,
    PixPaymentRequest,
    PixPaymentResult,
)
from application.services.payment_service import DirectPaymentService
from domain.common.exceptions import (
    DomainValidationException,
    GatewayError,
    OrderNotFoundException,
    OrderNotPayableException,
)
from domain.order.entity import OrderStatus
from domain.payment.entity import PaymentStatus


_request_adapter = TypeAdapter(DirectPaymentRequest)


def _body(order_id, method="pix", **extra) -> dict:
    body = {
        "payment_method": method,
        "order_id": order_id,
        "customer": {
            "name": "Ana",
            "email": "ana@example.com",
            "document": "123.456.789-09",
            "phone": "+55 22 99789-3098",
        },
        "address": {
            "street": "Rua A", "number": "10", "neighborhood": "Centro",
            "city": "Niterói", "state": "RJ", "zip_code": "24020-000",
        },
    }
    if method == "credit_card":
        body.update({"card_token": "tok_1", "installments": 1})
    body.update(extra)
    return body


def test_request_union_dispatches_on_payment_method():
    assert isinstance(_request_adapter.validate_python(_body("o1")), PixPaymentRequest)
    card = _request_adapter.validate_python(_body("o1", "credit_card", installments=3))
    assert isinstance(card, CardPaymentRequest) and card.installments == 3
    assert card.customer.document == "12345678909"
    assert card.customer.phone == "+5522997893098"


def test_request_union_rejects_unknown_method_and_bad_phone():
    with pytest.raises(ValidationError):
        _request_adapter.validate_python(_body("o1", "boleto"))
    with pytest.raises(ValidationError):
        _request_adapter.validate_python(_body("o1", customer={
            "name": "Ana", "email": "ana@example.com", "document": "12345678909", "phone": "123",
        }))


@pytest.mark.asyncio
async def test_pix_payment_returns_qr_code(store, uow_factory, direct_gateway, make_order):
    order, _ = await make_order(payment_status=None)
    svc = DirectPaymentService(uow_factory, direct_gateway)

    result, created = await svc.create_payment(_request_adapter.validate_python(_body(order.id)))

    assert created
    assert isinstance(result, PixPaymentResult)
    assert result.amount == 15990
    assert result.qr_code_url == "https://qr.test/1.png"
    assert result.provider_id == "or_pix_1"
    [payment] = store.payments.for_order(order.id)
    assert payment.status == PaymentStatus.PROCESSING
    assert payment.provider == "pagarme"


@pytest.mark.asyncio
async def test_paid_card_charge_completes_payment_and_confirms_order(store, uow_factory, direct_gateway, make_order):
    order, _ = await make_order(payment_status=None)
    svc = DirectPaymentService(uow_factory, direct_gateway)

    result, created = await svc.create_payment(
        _request_adapter.validate_python(_body(order.id, "credit_card", installments=10))
    )

    assert created
    assert isinstance(result, CardPaymentResult)
    assert result.installments == 10
    assert result.installments_max == 10
    assert result.status == "completed"
    [payment] = store.payments.for_order(order.id)
    assert payment.transaction_id == "ch_card_1"
    assert store.orders.orders[order.id].status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
@pytest.mark.parametrize("installments", [0, 11])
async def test_installments_out_of_range_fail_before_remote_call(uow_factory, direct_gateway, make_order, installments):
    order, _ = await make_order(payment_status=None)
    svc = DirectPaymentService(uow_factory, direct_gateway)

    with pytest.raises(DomainValidationException):
        await svc.create_payment(
            _request_adapter.validate_python(_body(order.id, "credit_card", installments=installments))
        )
    assert direct_gateway.card_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("installments", [1, 10])
async def test_installment_bounds_are_accepted(uow_factory, direct_gateway, make_order, installments):
    order, _ = await make_order(payment_status=None)
    svc = DirectPaymentService(uow_factory, direct_gateway)

    await svc.create_payment(
        _request_adapter.validate_python(_body(order.id, "credit_card", installments=installments))
    )

    assert direct_gateway.card_calls == [(order.id, installments)]


@pytest.mark.asyncio
async def test_existing_live_payment_is_returned_without_new_charge(store, uow_factory, direct_gateway, make_order):
    order, _ = await make_order(payment_status=None)
    svc = DirectPaymentService(uow_factory, direct_gateway)
    first, _ = await svc.create_payment(_request_adapter.validate_python(_body(order.id)))

    second, created = await svc.create_payment(_request_adapter.validate_python(_body(order.id)))

    assert not created
    assert second.duplicate
    assert second.payment_id == first.payment_id
    assert len(direct_gateway.pix_calls) == 1
    assert len(store.payments.for_order(order.id)) == 1


@pytest.mark.asyncio
async def test_failed_payment_does_not_block_a_new_one(store, uow_factory, direct_gateway, make_order):
    order, old = await make_order(payment_status=PaymentStatus.FAILED)
    svc = DirectPaymentService(uow_factory, direct_gateway)

    result, created = await svc.create_payment(_request_adapter.validate_python(_body(order.id)))

    assert created
    assert result.payment_id != old.id
    assert len(store.payments.for_order(order.id)) == 2


@pytest.mark.asyncio
async def test_gateway_error_marks_reserved_payment_failed(store, uow_factory, direct_gateway, make_order):
    order, _ = await make_order(payment_status=None)
    direct_gateway.error = GatewayError("declined", provider="pagarme", retryable=False, status_code=422)
    svc = DirectPaymentService(uow_factory, direct_gateway)

    with pytest.raises(GatewayError):
        await svc.create_payment(_request_adapter.validate_python(_body(order.id)))

    [payment] = store.payments.for_order(order.id)
    assert payment.status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_unknown_or_closed_order_is_rejected(uow_factory, direct_gateway, make_order):
    svc = DirectPaymentService(uow_factory, direct_gateway)
    with pytest.raises(OrderNotFoundException):
        await svc.create_payment(_request_adapter.validate_python(_body("missing")))

    order, _ = await make_order(status=OrderStatus.CANCELLED, payment_status=None)
    with pytest.raises(OrderNotPayableException):
        await svc.create_payment(_request_adapter.validate_python(_body(order.id)))
