# Shopify webhooks: orders/create, orders/updated, orders/cancelled, products/delete

from __future__ import annotations
import json, logging, uuid
from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from bunjang_bridge.core.errors import ValidationError
from bunjang_bridge.core.security import verify_shopify_hmac
from bunjang_bridge.services.webhook_handlers import ShopifyWebhookHandlers


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/shopify", tags=["webhooks.shopify"])


def get_webhook_handlers() -> ShopifyWebhookHandlers:
    return ShopifyWebhookHandlers()


'''
统一处理流程：
   1) 读原始 body 校验 HMAC，失败 401
   2) 解析 JSON，失败 400
   3) 业务处理正常返回 -> 200（即使 success=False，避免 Shopify 重投导致重复下单）
      payload 字段缺失（ValidationError）也回 200 + ok=False：重投也不会变合法
   4) 未捕获异常 -> 500（Shopify 会重投）
'''
async def _dispatch(
    request: Request,
    hmac_header: str,
    topic: str,
    webhook_id: str,
    handler: Callable[[Dict[str, Any], str], Dict[str, Any]],
) -> Dict[str, Any]:
    raw_body = await request.body()
    if not verify_shopify_hmac(hmac_header, raw_body):
        logger.warning("webhook.hmac_invalid topic=%s webhook_id=%s", topic, webhook_id)
        raise HTTPException(status_code=401, detail="Invalid HMAC")

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    job_id = webhook_id or f"wh-{uuid.uuid4().hex[:8]}"
    logger.info("[job=%s] webhook.received topic=%s", job_id, topic)
    try:
        result = await run_in_threadpool(handler, payload, job_id)
    except ValidationError as e:
        logger.error("[job=%s] webhook.invalid_payload topic=%s err=%s details=%s", job_id, topic, e, e.details)
        return {"ok": False, "topic": topic, "error": e.message, "details": e.details}
    except Exception:
        logger.exception("[job=%s] webhook.handler_failed topic=%s", job_id, topic)
        raise HTTPException(status_code=500, detail="Webhook handler failed")

    return {"ok": True, "topic": topic, "result": result}


@router.post("/orders/create")
async def orders_create(
    request: Request,
    x_shopify_hmac_sha256: str = Header(default=""),
    x_shopify_webhook_id: str = Header(default=""),
    handlers: ShopifyWebhookHandlers = Depends(get_webhook_handlers),
):
    return await _dispatch(request, x_shopify_hmac_sha256, "orders/create", x_shopify_webhook_id,
                           handlers.handle_order_created)


@router.post("/orders/updated")
async def orders_updated(
    request: Request,
    x_shopify_hmac_sha256: str = Header(default=""),
    x_shopify_webhook_id: str = Header(default=""),
    handlers: ShopifyWebhookHandlers = Depends(get_webhook_handlers),
):
    return await _dispatch(request, x_shopify_hmac_sha256, "orders/updated", x_shopify_webhook_id,
                           handlers.handle_order_updated)


@router.post("/orders/cancelled")
async def orders_cancelled(
    request: Request,
    x_shopify_hmac_sha256: str = Header(default=""),
    x_shopify_webhook_id: str = Header(default=""),
    handlers: ShopifyWebhookHandlers = Depends(get_webhook_handlers),
):
    return await _dispatch(request, x_shopify_hmac_sha256, "orders/cancelled", x_shopify_webhook_id,
                           handlers.handle_order_cancelled)


@router.post("/products/delete")
async def products_delete(
    request: Request,
    x_shopify_hmac_sha256: str = Header(default=""),
    x_shopify_webhook_id: str = Header(default=""),
    handlers: ShopifyWebhookHandlers = Depends(get_webhook_handlers),
):
    return await _dispatch(request, x_shopify_hmac_sha256, "products/delete", x_shopify_webhook_id,
                           handlers.handle_product_deleted)
