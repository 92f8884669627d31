"""
Checkout API routes.

Thin layer: request validation via pydantic models, everything else in
CheckoutService / ReconciliationService.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from api.dependencies import get_checkout_service, get_reconciliation_service
from application.dtos.checkout import (
    CheckoutRequest,
    CheckoutResponse,
    OrderStatusResponse,
    VerifyPaymentResult,
)
from application.services.checkout_service import CheckoutService
from application.services.reconciliation_service import ReconciliationService
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post(
    "",
    summary="创建订单并生成支付链接",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[CheckoutResponse],
)
async def create_checkout(
    body: CheckoutRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    - **items**: 购物车条目（金额为最小货币单位）
    - **payment_method**: `pix` 原价，`card` 加收 12.5%
    """
    result = await service.create_checkout(body)
    return success_response(data=result, message="Checkout created")


@router.get(
    "/{order_id}/status",
    summary="查询订单与支付状态",
    response_model=ApiResponse[OrderStatusResponse],
)
async def get_checkout_status(
    order_id: str,
    service: CheckoutService = Depends(get_checkout_service),
):
    result = await service.get_order_status(order_id)
    return success_response(data=result)


@router.post(
    "/{order_id}/verify-payment",
    summary="主动向支付渠道核对支付状态",
    response_model=ApiResponse[VerifyPaymentResult],
)
async def verify_payment(
    order_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Webhook 丢失或延迟时由前端调用；与 webhook 走同一套对账逻辑"""
    result = await service.verify_payment(order_id)
    return success_response(data=result)
