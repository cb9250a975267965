"""
Shopify webhook 的业务处理（签名校验之后）。

返回 dict 给路由层；正常返回 = 200（即使 success=False），
只有未捕获异常才让路由返回 500 触发 Shopify 重投。
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session, sessionmaker

from bunjang_bridge.core.errors import ValidationError
from bunjang_bridge.core.logging import job_prefix
from bunjang_bridge.db.session import session_scope
from bunjang_bridge.integrations.shopify.payload_utils import (
    ShopifyOrderPayload,
    ShopifyProductDeletedPayload,
)
from bunjang_bridge.repository import synced_product_repo as repo
from bunjang_bridge.services.inventory_service import InventoryService
from bunjang_bridge.services.order_service import OrderService


logger = logging.getLogger(__name__)


class ShopifyWebhookHandlers:

    def __init__(
        self,
        *,
        order_service: Optional[OrderService] = None,
        inventory_service: Optional[InventoryService] = None,
        session_factory: Optional[sessionmaker[Session]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.order_service = order_service or OrderService(session_factory=session_factory)
        self.inventory_service = inventory_service or InventoryService(session_factory=session_factory)


    # ---------- orders/create ----------
    def handle_order_created(self, payload: Mapping[str, Any], job_id: Optional[str] = None) -> Dict[str, Any]:
        job_id = job_id or f"wh-{uuid.uuid4().hex[:8]}"
        jp = job_prefix(job_id)
        order = self._parse_order(payload)

        try:
            result = self.order_service.process_shopify_order_for_bunjang(order, job_id).as_dict()
        except ValidationError:
            raise
        except Exception as e:
            logger.exception("%s webhook.orders_create reconcile failed order=%s err=%s", jp, order.id, e)
            result = {"success": False, "message": str(e)}

        inventory = self._resync_linked_items(order, jp, job_id, after_sale=True)
        logger.info("%s webhook.orders_create order=%s result=%s inventory=%s", jp, order.id, result, inventory)
        return {"order": result, "inventory": inventory}


    # ---------- orders/updated ----------
    def handle_order_updated(self, payload: Mapping[str, Any], job_id: Optional[str] = None) -> Dict[str, Any]:
        job_id = job_id or f"wh-{uuid.uuid4().hex[:8]}"
        jp = job_prefix(job_id)
        order = self._parse_order(payload, require_items=False)
        if not order.cancelled_at:
            logger.info("%s webhook.orders_updated order=%s not cancelled; nothing to do", jp, order.id)
            return {"skipped": True}

        inventory = self._resync_linked_items(order, jp, job_id)
        return {"cancelled": True, "inventory": inventory}


    # ---------- orders/cancelled ----------
    def handle_order_cancelled(self, payload: Mapping[str, Any], job_id: Optional[str] = None) -> Dict[str, Any]:
        job_id = job_id or f"wh-{uuid.uuid4().hex[:8]}"
        jp = job_prefix(job_id)
        order = self._parse_order(payload, require_items=False)
        inventory = self._resync_linked_items(order, jp, job_id)
        logger.info("%s webhook.orders_cancelled order=%s inventory=%s", jp, order.id, inventory)
        return {"cancelled": True, "inventory": inventory}


    # ---------- products/delete ----------
    def handle_product_deleted(self, payload: Mapping[str, Any], job_id: Optional[str] = None) -> Dict[str, Any]:
        jp = job_prefix(job_id)
        try:
            product = ShopifyProductDeletedPayload.model_validate(dict(payload))
        except PydanticValidationError as e:
            raise ValidationError("Invalid products/delete payload", [{"field": "id", "message": "required"}]) from e

        with session_scope(self.session_factory) as db:
            deleted = repo.delete_by_shopify_gid(db, product.gid)
        logger.info("%s webhook.products_delete gid=%s mappings_deleted=%s", jp, product.gid, deleted)
        return {"deleted": deleted}


    # ---------- helpers ----------
    def _parse_order(self, payload: Mapping[str, Any], *, require_items: bool = True) -> ShopifyOrderPayload:
        try:
            order = ShopifyOrderPayload.model_validate(dict(payload))
        except PydanticValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ValidationError(f"Invalid order payload: {', '.join(fields)}",
                                  [{"field": f, "message": "missing or invalid"} for f in fields]) from e
        if require_items and not order.line_items:
            raise ValidationError("Invalid order payload: missing line_items",
                                  [{"field": "line_items", "message": "required"}])
        return order


    def _linked_pids(self, order: ShopifyOrderPayload) -> List[tuple[str, int]]:
        out: List[tuple[str, int]] = []
        with session_scope(self.session_factory) as db:
            for item in order.line_items:
                mapping = repo.find_for_shopify_product(db, item.product_id)
                if mapping is not None:
                    out.append((mapping.bunjang_pid, item.quantity))
        return out


    def _resync_linked_items(
        self,
        order: ShopifyOrderPayload,
        jp: str,
        job_id: Optional[str],
        *,
        after_sale: bool = False,
    ) -> Dict[str, Any]:
        """每个已关联的 item 重新钉库存到 1；单个失败不影响其它。"""
        results: Dict[str, Any] = {}
        for pid, qty in self._linked_pids(order):
            try:
                if after_sale:
                    results[pid] = self.inventory_service.process_order_inventory_update(pid, qty, job_id)
                else:
                    results[pid] = self.inventory_service.check_and_sync_bunjang_inventory(pid, job_id)
            except Exception as e:
                logger.error("%s webhook.inventory resync failed pid=%s err=%s", jp, pid, e)
                results[pid] = False
        return results
