"""
Direct payment API routes (Pagar.me PIX / credit card).

Keep this thin: no provider details here.
"""
from __future__ import annotations

from typing import Annotated, Union

from fastapi import APIRouter, Body, Depends, Response, status

from api.dependencies import get_direct_payment_service
from application.dtos.payments import (
    CardPaymentRequest,
    CardPaymentResult,
    PixPaymentRequest,
    PixPaymentResult,
)
from application.services.payment_service import DirectPaymentService
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post(
    "",
    summary="创建直连支付（PIX / 信用卡）",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[Union[PixPaymentResult, CardPaymentResult]],
)
async def create_payment(
    response: Response,
    body: Annotated[Union[PixPaymentRequest, CardPaymentRequest], Body(discriminator="payment_method")],
    service: DirectPaymentService = Depends(get_direct_payment_service),
):
    """
    按 `payment_method` 区分请求体：

    - **pix**: 返回二维码与过期时间
    - **credit_card**: 需 `card_token`，`installments` 取值 1-10

    订单已有未失败的支付时直接返回该支付（200，`duplicate=true`）。
    """
    result, created = await service.create_payment(body)
    if not created:
        response.status_code = status.HTTP_200_OK
        return success_response(data=result, message="Payment already exists")
    return success_response(data=result, message="Payment created")
