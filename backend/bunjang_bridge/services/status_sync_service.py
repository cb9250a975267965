"""
Bunjang 订单状态 -> Shopify 订单（轮询）。

Bunjang 没有订单状态 webhook，只能按 "状态更新时间" 窗口分页拉取。
窗口最长 15 天（API 硬限制）。对同一状态重复执行结果相同：
标签是合并写，metafield 是覆盖写。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from bunjang_bridge.core.config import settings
from bunjang_bridge.core.errors import ValidationError
from bunjang_bridge.core.logging import job_prefix
from bunjang_bridge.integrations.bunjang import BunjangAPI, BunjangOrder, BunjangOrderItem
from bunjang_bridge.integrations.shopify.shopify_client import ShopifyClient
from bunjang_bridge.services.order_service import METAFIELD_NAMESPACE, bunjang_order_tag
from bunjang_bridge.utils.clock import iso_utc, now_utc, to_utc


logger = logging.getLogger(__name__)

FULFILLMENT_STATUSES = frozenset({"SHIP_READY", "IN_TRANSIT", "DELIVERY_COMPLETED"})
PURCHASE_CONFIRM_STATUS = "PURCHASE_CONFIRM"
CANCEL_RETURN_STATUSES = frozenset({
    "CANCEL_REQUESTED_BEFORE_SHIPPING",
    "REFUNDED",
    "RETURN_REQUESTED",
    "RETURNED",
})


@dataclass
class StatusSyncResult:
    success: bool
    synced_orders: int = 0
    errors: int = 0

    def as_dict(self) -> dict:
        return {"success": self.success, "syncedOrders": self.synced_orders, "errors": self.errors}


def validate_window(start: datetime, end: datetime, max_days: Optional[int] = None) -> None:
    max_days = settings.BUNJANG_ORDER_MAX_RANGE_DAYS if max_days is None else max_days
    span = to_utc(end) - to_utc(start)
    if span < timedelta(0):
        raise ValidationError("Order status sync window is reversed",
                              [{"field": "dateRange", "message": f"start={iso_utc(start)} end={iso_utc(end)}"}])
    if span > timedelta(days=max_days):
        days = span.total_seconds() / 86400
        raise ValidationError(
            f"Bunjang order queries are limited to {max_days} days",
            [{"field": "dateRange", "message": f"requested span: {days:.4f} days"}],
        )


class StatusSyncService:

    def __init__(
        self,
        *,
        shopify: Optional[ShopifyClient] = None,
        bunjang: Optional[BunjangAPI] = None,
        page_size: Optional[int] = None,
    ) -> None:
        self.shopify = shopify or ShopifyClient()
        self.bunjang = bunjang or BunjangAPI()
        self.page_size = page_size or settings.BUNJANG_ORDERS_PAGE_SIZE


    def sync_bunjang_order_statuses(
        self,
        start: datetime,
        end: datetime,
        job_id: Optional[str] = None,
    ) -> StatusSyncResult:
        jp = job_prefix(job_id)
        validate_window(start, end)
        start, end = to_utc(start), to_utc(end)
        logger.info("%s status_sync start window=%s..%s", jp, iso_utc(start), iso_utc(end))

        synced = errors = 0
        page = 0
        while True:
            # 翻页本身失败（鉴权 / 网络）直接抛：整次同步交给任务重试
            resp = self.bunjang.get_bunjang_orders(start, end, page=page, size=self.page_size)
            if not resp.data:
                break

            for raw in resp.data:
                order_id = raw.get("id") if isinstance(raw, dict) else None
                try:
                    order = BunjangOrder.model_validate(raw)
                    self.update_shopify_order_from_bunjang_status(order, job_id)
                    synced += 1
                except Exception as e:
                    errors += 1
                    logger.error("%s status_sync order=%s failed err=%s", jp, order_id, e)

            if page >= resp.total_pages - 1:
                break
            page += 1

        logger.info("%s status_sync done synced=%s errors=%s pages=%s", jp, synced, errors, page + 1)
        return StatusSyncResult(success=True, synced_orders=synced, errors=errors)


    def update_shopify_order_from_bunjang_status(self, order: BunjangOrder, job_id: Optional[str] = None) -> bool:
        """按 BunjangOrder-<id> 标签找 Shopify 订单；找不到只记 warning 并返回 False。"""
        jp = job_prefix(job_id)
        shopify_order = self.shopify.find_order_by_tag(bunjang_order_tag(order.id))
        if shopify_order is None:
            logger.warning("%s status_sync no shopify order for bunjang order=%s", jp, order.id)
            return False

        order_gid = shopify_order.id
        for item in order.order_items:
            status = item.status
            logger.info("%s status_sync bunjang order=%s product=%s status=%s",
                        jp, order.id, item.product.id, status)

            if status in FULFILLMENT_STATUSES:
                self.update_shopify_fulfillment_status(order_gid, status, item, job_id)
            elif status == PURCHASE_CONFIRM_STATUS:
                self.shopify.update_order(
                    order_gid,
                    metafields=[
                        {"namespace": METAFIELD_NAMESPACE, "key": "purchase_confirmed",
                         "type": "single_line_text_field", "value": "true"},
                        {"namespace": METAFIELD_NAMESPACE, "key": "purchase_confirmed_at",
                         "type": "date_time", "value": item.purchase_confirmed_at or iso_utc(now_utc())},
                    ],
                )
            elif status in CANCEL_RETURN_STATUSES:
                self.shopify.update_order(
                    order_gid,
                    tags=[f"BunjangStatus-{status}", f"{bunjang_order_tag(order.id)}-{status}"],
                )
                logger.warning("%s status_sync refund workflow required order=%s bunjang_order=%s status=%s",
                               jp, order_gid, order.id, status)

            self.shopify.update_order(
                order_gid,
                metafields=[
                    {"namespace": METAFIELD_NAMESPACE, "key": "last_status_sync",
                     "type": "date_time", "value": iso_utc(now_utc())},
                    {"namespace": METAFIELD_NAMESPACE, "key": "last_bunjang_status",
                     "type": "single_line_text_field", "value": status},
                ],
            )
        return True


    def update_shopify_fulfillment_status(
        self,
        order_gid: str,
        bunjang_status: str,
        item: BunjangOrderItem,
        job_id: Optional[str] = None,
    ) -> None:
        # TODO: map SHIP_READY / IN_TRANSIT / DELIVERY_COMPLETED onto fulfillmentOrder + fulfillmentCreate once Bunjang exposes tracking numbers
        logger.info("%s status_sync fulfillment update pending order=%s product=%s status=%s",
                    job_prefix(job_id), order_gid, item.product.id, bunjang_status)
