"""
API依赖项 - 从 app.state 取出 lifespan 中构建的组件
"""
from fastapi import Request

from application.services.checkout_service import CheckoutService
from application.services.payment_service import DirectPaymentService
from application.services.reconciliation_service import ReconciliationService
from infrastructure.tasks.webhook_worker import ReconciliationWorker


def get_checkout_service(request: Request) -> CheckoutService:
    return request.app.state.checkout_service


def get_reconciliation_service(request: Request) -> ReconciliationService:
    return request.app.state.reconciliation_service


def get_direct_payment_service(request: Request) -> DirectPaymentService:
    return request.app.state.direct_payment_service


def get_reconciliation_worker(request: Request) -> ReconciliationWorker:
    return request.app.state.reconciliation_worker
