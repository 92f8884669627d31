"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings, and provide in-memory store
and gateway fakes shared by the service and route tests.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("INFINITEPAY__HANDLE", "$loja-teste")
os.environ.setdefault("PAGARME__SECRET_KEY", "sk_test_123")
os.environ.setdefault("BACKEND_URL", "https://api.loja.test")
os.environ.setdefault("FRONTEND_URL", "https://loja.test")
os.environ.setdefault("RETRY__BASE_DELAY", "0")

import asyncio
import copy
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from application.dtos.payments import (
    CardCharge,
    CheckoutLink,
    PaymentStatusReport,
    PixCharge,
)
from domain.common.exceptions import ConcurrentUpdateError, PaymentAlreadyExistsException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderItem, OrderStatus, check_transition, statuses_leading_to
from domain.order.repository import OrderRepository
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.repository import PaymentRepository


class InMemoryOrderRepository(OrderRepository):
    def __init__(self) -> None:
        self.orders: Dict[str, Order] = {}
        self.fail_add_items = False
        self.fail_delete = False
        self.fail_update_status = False

    async def create(self, order: Order) -> Order:
        stored = copy.deepcopy(order)
        stored.id = stored.id or str(uuid.uuid4())
        stored.created_at = stored.updated_at = datetime.now(timezone.utc)
        self.orders[stored.id] = stored
        return copy.deepcopy(stored)

    async def add_items(self, order_id: str, items: List[OrderItem]) -> List[OrderItem]:
        if self.fail_add_items:
            raise RuntimeError("insert into order_items failed")
        saved = [
            OrderItem(
                product_id=i.product_id,
                product_name=i.product_name,
                quantity=i.quantity,
                unit_price=i.unit_price,
                line_total=i.subtotal,
                id=n,
                order_id=order_id,
            )
            for n, i in enumerate(items, start=1)
        ]
        self.orders[order_id].items = list(saved)
        return saved

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        await asyncio.sleep(0)
        order = self.orders.get(order_id)
        if order is None:
            return None
        found = copy.deepcopy(order)
        found.items = []
        return found

    async def get_with_items(self, order_id: str) -> Optional[Order]:
        order = self.orders.get(order_id)
        return copy.deepcopy(order) if order else None

    async def update_status(self, order_id, status, *, expected_status=None) -> bool:
        if self.fail_update_status:
            raise RuntimeError("orders table unavailable")
        order = self.orders.get(order_id)
        if order is None:
            return False
        if expected_status is not None:
            check_transition(expected_status, status)
            if order.status != expected_status:
                return False
        elif order.status not in statuses_leading_to(status):
            return False
        order.status = status
        return True

    async def delete(self, order_id: str) -> bool:
        if self.fail_delete:
            raise RuntimeError("delete failed")
        return self.orders.pop(order_id, None) is not None


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self) -> None:
        self.payments: Dict[str, Payment] = {}
        self.update_calls = 0

    async def create(self, payment: Payment) -> Payment:
        if any(p.order_id == payment.order_id and p.is_live() for p in self.payments.values()):
            raise PaymentAlreadyExistsException(payment.order_id)
        stored = copy.deepcopy(payment)
        stored.id = stored.id or str(uuid.uuid4())
        stored.version = 0
        stored.created_at = datetime.now(timezone.utc)
        self.payments[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        await asyncio.sleep(0)
        payment = self.payments.get(payment_id)
        return copy.deepcopy(payment) if payment else None

    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        await asyncio.sleep(0)
        candidates = [p for p in self.payments.values() if p.order_id == order_id]
        if not candidates:
            return None
        live = [p for p in candidates if p.is_live()]
        chosen = live[0] if live else max(candidates, key=lambda p: p.created_at)
        return copy.deepcopy(chosen)

    async def update(self, payment: Payment, *, expected_version: int) -> Payment:
        await asyncio.sleep(0)
        self.update_calls += 1
        stored = self.payments.get(payment.id)
        if stored is None or stored.version != expected_version:
            raise ConcurrentUpdateError("Payment", str(payment.id))
        saved = copy.deepcopy(payment)
        saved.version = expected_version + 1
        self.payments[payment.id] = saved
        payment.version = saved.version
        return payment

    def for_order(self, order_id: str) -> List[Payment]:
        return [p for p in self.payments.values() if p.order_id == order_id]


class InMemoryStore:
    def __init__(self) -> None:
        self.orders = InMemoryOrderRepository()
        self.payments = InMemoryPaymentRepository()
        self.commits = 0


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._store = store
        self.order_repository = store.orders
        self.payment_repository = store.payments

    async def commit(self) -> None:
        self._committed = True
        self._store.commits += 1

    async def rollback(self) -> None:
        self._committed = False


class FakeCheckoutGateway:
    provider = "infinitepay"

    def __init__(self) -> None:
        self.link_calls: list = []
        self.status_calls: list = []
        self.link_error: Optional[Exception] = None
        self.report = PaymentStatusReport(order_id="", status="pending")

    async def create_checkout_link(self, order_id, items, customer=None, address=None, handle=None):
        self.link_calls.append({"order_id": order_id, "items": items, "customer": customer, "address": address})
        if self.link_error is not None:
            raise self.link_error
        return CheckoutLink(url=f"https://pay.test/{order_id}", remote_order_id=order_id)

    async def check_payment_status(self, order_id):
        self.status_calls.append(order_id)
        return self.report.model_copy(update={"order_id": order_id})

    async def aclose(self):
        return None


class FakeDirectGateway:
    provider = "pagarme"
    max_installments = 10

    def __init__(self) -> None:
        self.pix_calls: list = []
        self.card_calls: list = []
        self.card_status = "completed"
        self.error: Optional[Exception] = None

    async def create_pix_charge(self, order_id, customer, address):
        self.pix_calls.append(order_id)
        if self.error is not None:
            raise self.error
        return PixCharge(
            remote_order_id="or_pix_1",
            remote_charge_id="ch_pix_1",
            amount=15990,
            status="pending",
            qr_code="000201BR.GOV.BCB.PIX",
            qr_code_url="https://qr.test/1.png",
            expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )

    async def create_card_charge(self, order_id, card_token, installments, customer, address):
        self.card_calls.append((order_id, installments))
        if self.error is not None:
            raise self.error
        return CardCharge(
            remote_order_id="or_card_1",
            remote_charge_id="ch_card_1",
            amount=18000,
            installments=installments,
            status=self.card_status,
        )

    async def aclose(self):
        return None


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    def _factory(*, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(store, readonly=readonly)
    return _factory


@pytest.fixture
def checkout_gateway() -> FakeCheckoutGateway:
    return FakeCheckoutGateway()


@pytest.fixture
def direct_gateway() -> FakeDirectGateway:
    return FakeDirectGateway()


@pytest.fixture
def make_order(store):
    """Insert a pending order (optionally with a payment) straight into the store."""
    from domain.order.entity import CustomerContact
    from domain.payment.entity import PaymentMethod

    async def _make(
        *,
        total: int = 10000,
        status: OrderStatus = OrderStatus.PENDING,
        payment_status: Optional[PaymentStatus] = PaymentStatus.PROCESSING,
        transaction_id: Optional[str] = None,
    ):
        order = await store.orders.create(
            Order(
                id=None,
                user_id=None,
                status=status,
                total=total,
                customer=CustomerContact(email="ana@example.com", name="Ana"),
            )
        )
        payment = None
        if payment_status is not None:
            payment = await store.payments.create(
                Payment(
                    id=None,
                    order_id=order.id,
                    method=PaymentMethod.PIX,
                    status=PaymentStatus.PENDING,
                    amount=total,
                )
            )
            stored = store.payments.payments[payment.id]
            stored.status = payment_status
            stored.transaction_id = transaction_id
            payment = copy.deepcopy(stored)
        return order, payment

    return _make
