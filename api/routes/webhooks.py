"""
Provider webhook routes.

The provider only needs to know the notification arrived, so these routes
always answer 200 with a plain ``{"received": true, ...}`` body (no response
envelope). Reconciliation runs later in the worker.
"""
from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from api.dependencies import get_reconciliation_worker
from api.middleware import get_request_id
from application.dtos.payments import WebhookPayload
from core.logging_config import get_logger
from infrastructure.tasks.webhook_worker import ReconciliationWorker, WorkerQueueFull


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


@router.post("/infinitepay", summary="InfinitePay 支付通知")
async def infinitepay_webhook(
    request: Request,
    worker: ReconciliationWorker = Depends(get_reconciliation_worker),
):
    raw_body = await request.body()
    try:
        payload = WebhookPayload.model_validate(json.loads(raw_body or b"null"))
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
        logger.warning(
            "webhook_invalid_payload",
            provider="infinitepay",
            request_id=get_request_id(),
            error=str(exc),
            body_size=len(raw_body),
        )
        return {"received": True, "validation_error": True}

    logger.info(
        "webhook_received",
        provider="infinitepay",
        order_id=payload.order_nsu,
        status=payload.status,
        transaction_id=payload.transaction_id,
        extra_keys=sorted(payload.extras()),
    )
    try:
        await worker.submit(payload)
    except WorkerQueueFull as exc:
        # dropped; verify-payment still settles the order
        logger.warning("webhook_queue_full", order_id=payload.order_nsu, pending=exc.pending)
        return {"received": True, "queue_full": True}
    except Exception as exc:
        logger.error("webhook_enqueue_failed", order_id=payload.order_nsu, error=str(exc), exc_info=True)
        return {"received": True, "error": True}
    return {"received": True}
