"""
Order API routes.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_checkout_service
from application.dtos.checkout import OrderDetail
from application.services.checkout_service import CheckoutService
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("/{order_id}", summary="订单详情（含行项目）", response_model=ApiResponse[OrderDetail])
async def get_order(
    order_id: str,
    service: CheckoutService = Depends(get_checkout_service),
):
    order = await service.get_order(order_id)
    return success_response(data=order)
