"""
Shopify 订单 -> Bunjang 下单（订单对账）。

一个 Shopify 订单最多成功下单一次：订单 metafield bunjang.order_ids 就是幂等标记，
存在即跳过。订单内的 line item 逐个串行处理，单个 item 的失败只打标签、记日志，
不影响其它 item。
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session, sessionmaker

from bunjang_bridge.core.config import settings
from bunjang_bridge.core.errors import ValidationError
from bunjang_bridge.core.logging import job_prefix
from bunjang_bridge.db.model.synced_product import SyncStatus
from bunjang_bridge.db.session import session_scope
from bunjang_bridge.integrations.bunjang import BunjangAPI
from bunjang_bridge.integrations.shopify.payload_utils import (
    ShopifyLineItem,
    ShopifyOrderPayload,
    to_gid,
)
from bunjang_bridge.integrations.shopify.shopify_client import ShopifyClient
from bunjang_bridge.repository import synced_product_repo as repo
from bunjang_bridge.services.order_failure import (
    OrderFailureKind,
    classify_bunjang_error,
    describe_bunjang_error,
)
from bunjang_bridge.utils.clock import iso_utc, now_utc


logger = logging.getLogger(__name__)

METAFIELD_NAMESPACE = "bunjang"
ORDER_IDS_KEY = "order_ids"
ORDER_CREATED_AT_KEY = "order_created_at"
BUNJANG_PID_TAG_PREFIX = "bunjang_pid:"
ORDER_PLACED_TAG = "BunjangOrderPlaced"
LOW_BALANCE_TAG = "LowPointBalance"


def bunjang_order_tag(bunjang_order_id: str) -> str:
    return f"BunjangOrder-{bunjang_order_id}"


@dataclass
class ReconcileResult:
    success: bool
    bunjang_order_ids: List[str] = field(default_factory=list)
    already_processed: bool = False
    message: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.bunjang_order_ids:
            out["bunjangOrderIds"] = list(self.bunjang_order_ids)
        if self.already_processed:
            out["alreadyProcessed"] = True
        if self.message:
            out["message"] = self.message
        return out


class OrderService:

    def __init__(
        self,
        *,
        shopify: Optional[ShopifyClient] = None,
        bunjang: Optional[BunjangAPI] = None,
        session_factory: Optional[sessionmaker[Session]] = None,
    ) -> None:
        self.shopify = shopify or ShopifyClient()
        self.bunjang = bunjang or BunjangAPI()
        self.session_factory = session_factory


    # ---------------- 入口 ----------------
    def process_shopify_order_for_bunjang(
        self,
        order: Union[ShopifyOrderPayload, Mapping[str, Any]],
        job_id: Optional[str] = None,
    ) -> ReconcileResult:
        jp = job_prefix(job_id)
        order = self._validate_order(order)
        order_gid = order.admin_graphql_api_id
        identifier = f"{settings.BUNJANG_ORDER_IDENTIFIER_PREFIX}{order.id}"
        error_tag = f"{identifier}_Error"

        logger.info("%s order.reconcile start order_id=%s gid=%s items=%s",
                    jp, order.id, order_gid, len(order.line_items))

        # 1) 幂等检查：读失败只记日志，继续处理
        existing = self._existing_order_ids(order_gid, jp)
        if existing:
            logger.info("%s order.reconcile already_processed order_id=%s bunjang_ids=%s", jp, order.id, existing)
            return ReconcileResult(success=True, already_processed=True, bunjang_order_ids=existing)

        created_ids: List[str] = []
        halted = False

        # 2) 逐个 line item 串行处理
        for item in order.line_items:
            bunjang_pid = self._resolve_bunjang_pid(item, jp)
            if not bunjang_pid:
                continue

            if halted:
                logger.warning("%s order.item skipped after point shortage pid=%s", jp, bunjang_pid)
                self._tag(order_gid, [error_tag, f"{bunjang_pid}-Skipped"], jp)
                continue

            try:
                outcome = self._place_bunjang_order(order_gid, item, bunjang_pid, error_tag, jp)
            except Exception as e:
                logger.exception("%s order.item unexpected error pid=%s err=%s", jp, bunjang_pid, e)
                self._tag(order_gid, [error_tag, f"{bunjang_pid}-{OrderFailureKind.UNKNOWN.tag_suffix}"], jp)
                continue

            if isinstance(outcome, OrderFailureKind):
                if outcome is OrderFailureKind.INSUFFICIENT_POINTS and settings.BUNJANG_HALT_ON_POINT_SHORTAGE:
                    halted = True
                continue
            if outcome:
                created_ids.append(outcome)

        # 3) 汇总：有成功下单才写 metafield（幂等标记）
        if created_ids:
            self.shopify.update_order(
                order_gid,
                tags=[ORDER_PLACED_TAG, identifier],
                metafields=[
                    {
                        "namespace": METAFIELD_NAMESPACE,
                        "key": ORDER_IDS_KEY,
                        "type": "json",
                        "value": json.dumps(created_ids),
                    },
                    {
                        "namespace": METAFIELD_NAMESPACE,
                        "key": ORDER_CREATED_AT_KEY,
                        "type": "date_time",
                        "value": iso_utc(now_utc()),
                    },
                ],
            )
            logger.info("%s order.reconcile done order_id=%s bunjang_ids=%s", jp, order.id, created_ids)
            return ReconcileResult(success=True, bunjang_order_ids=created_ids)

        logger.warning("%s order.reconcile no bunjang order created order_id=%s", jp, order.id)
        return ReconcileResult(success=False, message="No Bunjang order was created for this Shopify order")


    # ---------------- 校验 ----------------
    def _validate_order(self, order: Union[ShopifyOrderPayload, Mapping[str, Any]]) -> ShopifyOrderPayload:
        if not isinstance(order, ShopifyOrderPayload):
            if not isinstance(order, Mapping):
                raise ValidationError("Invalid Shopify order payload",
                                      [{"field": "order", "message": "payload must be an object"}])
            try:
                order = ShopifyOrderPayload.model_validate(dict(order))
            except PydanticValidationError as e:
                fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
                raise ValidationError(
                    f"Invalid Shopify order payload: missing or invalid {', '.join(fields)}",
                    [{"field": f, "message": "missing or invalid"} for f in fields],
                ) from e

        if not order.admin_graphql_api_id:
            raise ValidationError("Invalid Shopify order payload: missing admin_graphql_api_id",
                                  [{"field": "admin_graphql_api_id", "message": "required"}])
        if not order.line_items:
            raise ValidationError("Invalid Shopify order payload: missing line_items",
                                  [{"field": "line_items", "message": "at least one line item required"}])
        # 自定义商品行没有 product_id，无法对应 Bunjang 商品
        missing = [f"line_items.{idx}.product_id" for idx, item in enumerate(order.line_items)
                   if item.product_id is None]
        if missing:
            raise ValidationError(f"Invalid Shopify order payload: missing {', '.join(missing)}",
                                  [{"field": f, "message": "required"} for f in missing])
        return order


    def _existing_order_ids(self, order_gid: str, jp: str) -> List[str]:
        try:
            value = self.shopify.get_order_metafield(order_gid, METAFIELD_NAMESPACE, ORDER_IDS_KEY)
        except Exception as e:
            logger.warning("%s order.idempotency check failed gid=%s err=%s", jp, order_gid, e)
            return []
        if not value:
            return []
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return [value]
        if isinstance(value, list):
            return [str(v) for v in value]
        return [str(value)]


    # ---------------- 映射解析 ----------------
    def _resolve_bunjang_pid(self, item: ShopifyLineItem, jp: str) -> Optional[str]:
        """
        先查映射表；查不到则看 Shopify 商品标签 bunjang_pid:<id> 自动建立映射。
        两者都没有：该商品不是双渠道商品，跳过。
        """
        if item.product_id is None:
            return None

        try:
            with session_scope(self.session_factory) as db:
                mapping = repo.find_for_shopify_product(db, item.product_id)
                if mapping is not None and mapping.bunjang_pid:
                    logger.info("%s order.item linked product_id=%s pid=%s", jp, item.product_id, mapping.bunjang_pid)
                    return mapping.bunjang_pid
        except Exception as e:
            logger.error("%s order.item mapping lookup failed product_id=%s err=%s", jp, item.product_id, e)
            return None

        return self._auto_link_from_tags(item, jp)


    def _auto_link_from_tags(self, item: ShopifyLineItem, jp: str) -> Optional[str]:
        product_gid = to_gid("Product", item.product_id)
        try:
            product = self.shopify.get_product_tags(product_gid)
        except Exception as e:
            logger.error("%s order.item product tags fetch failed gid=%s err=%s", jp, product_gid, e)
            return None
        if product is None:
            return None

        pid_tag = next((t for t in product.tags if t.startswith(BUNJANG_PID_TAG_PREFIX)), None)
        if not pid_tag:
            logger.debug("%s order.item not linked to bunjang product_id=%s", jp, item.product_id)
            return None
        bunjang_pid = pid_tag.split(":", 1)[1].strip()
        if not bunjang_pid:
            return None

        try:
            with session_scope(self.session_factory) as db:
                repo.create_link(
                    db,
                    bunjang_pid=bunjang_pid,
                    shopify_gid=product.gid,
                    shopify_product_id=str(item.product_id),
                    shopify_handle=product.handle,
                    product_name=product.title,
                    sync_status=SyncStatus.SYNCED,
                )
        except Exception as e:
            # 映射写失败不影响本次下单
            logger.error("%s order.item auto-link persist failed pid=%s err=%s", jp, bunjang_pid, e)

        logger.info("%s order.item auto-linked from tags product=%s pid=%s", jp, product.gid, bunjang_pid)
        return bunjang_pid


    # ---------------- 下单 ----------------
    def _place_bunjang_order(
        self,
        order_gid: str,
        item: ShopifyLineItem,
        bunjang_pid: str,
        error_tag: str,
        jp: str,
    ) -> Union[str, OrderFailureKind, None]:
        """
        返回：成功 -> Bunjang 订单号；下单接口报错 -> OrderFailureKind；
        其它跳过情况（商品不存在 / 库存不足 / 没有订单号）-> None。
        """
        product = self.bunjang.get_bunjang_product_details(bunjang_pid)
        if product is None:
            logger.warning("%s order.item bunjang product not found pid=%s", jp, bunjang_pid)
            self._tag(order_gid, [error_tag, f"{bunjang_pid}-NotFound"], jp)
            return None

        if (product.quantity or 0) < item.quantity:
            logger.warning("%s order.item insufficient stock pid=%s available=%s requested=%s",
                           jp, bunjang_pid, product.quantity, item.quantity)
            self._tag(order_gid, [error_tag, f"{bunjang_pid}-InsufficientStock"], jp)
            return None

        # 运费由我们承担：deliveryPrice 固定 0
        payload = {
            "product": {"id": int(bunjang_pid), "price": product.price or 0},
            "deliveryPrice": 0,
        }
        logger.info("%s order.item creating bunjang order pid=%s price=%s actual_shipping=%s applied_shipping=0",
                    jp, bunjang_pid, payload["product"]["price"], product.shipping_fee)

        try:
            created = self.bunjang.create_bunjang_order_v2(payload)
        except Exception as e:
            kind = classify_bunjang_error(e)
            if kind is OrderFailureKind.INSUFFICIENT_POINTS:
                logger.critical("%s order.item INSUFFICIENT BUNJANG POINTS pid=%s err=%s",
                                jp, bunjang_pid, describe_bunjang_error(e))
            else:
                logger.error("%s order.item bunjang order create failed pid=%s kind=%s err=%s",
                             jp, bunjang_pid, kind.name, describe_bunjang_error(e))
            self._tag(order_gid, [error_tag, f"{bunjang_pid}-{kind.tag_suffix}"], jp)
            return kind

        if not created.id:
            logger.error("%s order.item bunjang response missing order id pid=%s", jp, bunjang_pid)
            self._tag(order_gid, [error_tag, f"{bunjang_pid}-NoOrderId"], jp)
            return None

        logger.info("%s order.item bunjang order created pid=%s bunjang_order_id=%s", jp, bunjang_pid, created.id)
        self._tag(order_gid, [bunjang_order_tag(created.id)], jp)
        self._check_point_balance(order_gid, jp)
        return created.id


    def _check_point_balance(self, order_gid: str, jp: str) -> None:
        try:
            balance = self.bunjang.get_bunjang_point_balance()
        except Exception as e:
            logger.warning("%s order.point_balance check failed err=%s", jp, e)
            return

        threshold = settings.BUNJANG_LOW_BALANCE_THRESHOLD
        logger.info("%s order.point_balance balance=%s", jp, balance.balance)
        if balance.balance < threshold:
            logger.warning("%s order.point_balance LOW balance=%s threshold=%s", jp, balance.balance, threshold)
            self._tag(order_gid, [LOW_BALANCE_TAG], jp)


    def _tag(self, order_gid: str, tags: List[str], jp: str) -> None:
        """打标签失败只记日志。"""
        try:
            self.shopify.update_order(order_gid, tags=tags)
        except Exception as e:
            logger.error("%s order.tag failed gid=%s tags=%s err=%s", jp, order_gid, tags, e)
