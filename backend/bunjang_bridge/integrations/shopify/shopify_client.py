"""面向 Admin GraphQL 的轻量 Client：订单标签/metafield、商品标签、库存读写"""
from __future__ import annotations

import json, time, logging, requests
from typing import Any, Dict, List, Optional
from requests import HTTPError, Timeout, RequestException

from bunjang_bridge.core.config import settings
from bunjang_bridge.core.errors import ExternalServiceError
from bunjang_bridge.integrations.shopify.graphql_queries import (
    INVENTORY_ACTIVATE,
    INVENTORY_ITEM_ENABLE_TRACKING,
    INVENTORY_ITEM_LEVELS,
    INVENTORY_SET_ON_HAND,
    INVENTORY_SET_QUANTITIES,
    METAFIELDS_SET,
    ORDER_METAFIELD,
    ORDERS_BY_QUERY,
    PRODUCT_TAGS,
    PRODUCT_VARIANT_INVENTORY,
    SHOP_PING,
    TAGS_ADD,
    escape_tag_for_query,
)
from bunjang_bridge.integrations.shopify.payload_utils import (
    InventoryLevel,
    ShopifyOrderNode,
    ShopifyProductRef,
    VariantInventory,
    gid_to_numeric,
    normalize_tags,
    parse_inventory_levels,
)


logger = logging.getLogger(__name__)


class ShopifyGraphQLError(ExternalServiceError):
    """顶层 GraphQL errors / 非 JSON 响应。"""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, service="shopify", **kwargs)


class ShopifyUserError(ShopifyGraphQLError):
    """mutation 返回非空 userErrors：本次写入视为失败，不假设部分成功。"""

    def __init__(self, op_name: str, user_errors: List[Dict[str, Any]]) -> None:
        super().__init__(f"{op_name} userErrors: {user_errors}", details=user_errors)
        self.op_name = op_name
        self.user_errors = user_errors


# ---------------- 基础：端点 & 认证 ----------------

def _graphql_endpoint() -> str:
    # 用 myshopify 域名 + 版本拼接 GraphQL Admin API 端点
    if not settings.SHOPIFY_SHOP:
        raise ShopifyGraphQLError("SHOPIFY_SHOP is not configured")
    return f"https://{settings.SHOPIFY_SHOP}/admin/api/{settings.SHOPIFY_API_VERSION}/graphql.json"


def _auth_headers() -> dict:
    # 统一构造认证头。兼容 SecretStr 或 str。
    token = settings.SHOPIFY_ADMIN_TOKEN
    if hasattr(token, "get_secret_value"):
        token = token.get_secret_value()

    return {
        "Content-Type": "application/json",
        "X-Shopify-Access-Token": token or "",
        "User-Agent": "BunjangBridge/ShopifyClient (+python)",
    }


def _raise_on_user_errors(op_name: str, payload: Dict[str, Any]) -> None:
    user_errors = (payload or {}).get("userErrors") or []
    if user_errors:
        logger.error("shopify.graphql.user_errors op=%s errors=%s", op_name, user_errors)
        raise ShopifyUserError(op_name, user_errors)


class ShopifyClient:

    '''
    通用 GraphQL POST（带日志 + 重试）调用 Admin GraphQL 的公共逻辑
        - 统一 headers、json 负载、超时、HTTP 错误与 GraphQL 顶层 errors 处理
        - 返回完整 data（上层自己从 data[...] 取需要的节点）
        异常处理:
           1) 对 HTTP 5xx/网络异常做指数退避重试
           2) 对 HTTP 4xx 不重试（直接抛）
           3) 429 按 Retry-After 退避重试
           4) 顶层 GraphQL errors 直接抛 ShopifyGraphQLError
    '''
    def _post_graphql(
        self,
        query: str,
        variables: Optional[dict] = None,
        *,
        timeout: Optional[int] = None,
        op_name: str = "",
    ) -> dict:

        timeout = timeout or getattr(settings, "SHOPIFY_HTTP_TIMEOUT", 30)
        max_retries = max(0, int(getattr(settings, "SHOPIFY_HTTP_RETRIES", 3)))
        backoff_ms = max(50, int(getattr(settings, "SHOPIFY_HTTP_BACKOFF_MS", 200)))

        payload = {"query": query, "variables": variables or {}}
        # 不打印 query 全文，仅打 op_name / 变量键
        safe_vars_keys = list(payload["variables"].keys())
        url = _graphql_endpoint()

        for attempt in range(max_retries + 1):
            start = time.perf_counter()
            try:
                resp = requests.post(
                    url,
                    headers=_auth_headers(),
                    json=payload,
                    timeout=timeout,
                )
                latency_ms = int((time.perf_counter() - start) * 1000)

                try:
                    resp.raise_for_status()
                except HTTPError:
                    status = resp.status_code

                    if status == 429 and attempt < max_retries:
                        retry_after = resp.headers.get("Retry-After")
                        try:
                            sleep_s = max(0.1, float(retry_after))
                        except (TypeError, ValueError):
                            sleep_s = (backoff_ms / 1000.0) * (2 ** attempt)
                        logger.warning(
                            "shopify.graphql.429_throttled op=%s latency_ms=%s attempt=%s/%s retry_after=%s",
                            op_name, latency_ms, attempt, max_retries, retry_after)
                        time.sleep(sleep_s)
                        continue

                    logger.warning(
                        "shopify.graphql.http_error op=%s status=%s latency_ms=%s attempt=%s/%s",
                        op_name, status, latency_ms, attempt, max_retries)

                    if 400 <= status < 500 or attempt == max_retries:
                        raise
                    time.sleep((backoff_ms / 1000.0) * (2 ** attempt))
                    continue

                try:
                    data = resp.json()
                except ValueError:
                    if attempt < max_retries:
                        logger.warning("shopify.graphql.non_json op=%s attempt=%s/%s", op_name, attempt, max_retries)
                        time.sleep((backoff_ms / 1000.0) * (2 ** attempt))
                        continue
                    raise ShopifyGraphQLError(f"GraphQL response is not JSON: status={resp.status_code}")

                if data.get("errors"):
                    logger.error(
                        "shopify.graphql.gql_errors op=%s latency_ms=%s attempt=%s/%s errors=%s",
                        op_name, latency_ms, attempt, max_retries, data["errors"])
                    raise ShopifyGraphQLError(f"GraphQL top-level errors: {data['errors']}")

                logger.info("shopify.graphql.ok op=%s latency_ms=%s attempt=%s vars=%s",
                    op_name, latency_ms, attempt, safe_vars_keys)
                return data

            except Timeout:
                latency_ms = int((time.perf_counter() - start) * 1000)
                logger.warning("shopify.graphql.timeout op=%s latency_ms=%s attempt=%s/%s",
                    op_name, latency_ms, attempt, max_retries)
                if attempt == max_retries:
                    raise
                time.sleep((backoff_ms / 1000.0) * (2 ** attempt))

            except HTTPError:
                raise

            except RequestException as e:
                latency_ms = int((time.perf_counter() - start) * 1000)
                logger.warning("shopify.graphql.request_exception op=%s latency_ms=%s attempt=%s/%s err=%s",
                    op_name, latency_ms, attempt, max_retries, type(e).__name__)
                if attempt == max_retries:
                    raise
                time.sleep((backoff_ms / 1000.0) * (2 ** attempt))

        raise ShopifyGraphQLError(f"{op_name or 'graphql'} failed after retries")


    # 通用透传：上层自己写 query
    def shopify_graphql_request(self, query: str, variables: Optional[dict] = None, *, op_name: str = "passthrough") -> dict:
        return (self._post_graphql(query, variables, op_name=op_name).get("data") or {})


    # 基础连通性探测（本地先测 token/域名/版本是否正确）
    def ping(self) -> dict:
        return self._post_graphql(SHOP_PING, op_name="shop.ping")


    # ---------- 订单 ----------
    def get_order_metafield(self, order_gid: str, namespace: str, key: str) -> Optional[Any]:
        """
        读取订单 metafield，返回解析后的值；不存在返回 None。
        json 类型的 metafield 会被 json.loads。
        """
        data = self.shopify_graphql_request(
            ORDER_METAFIELD,
            {"id": order_gid, "namespace": namespace, "key": key},
            op_name="order.metafield",
        )
        mf = ((data.get("order") or {}).get("metafield")) or None
        if not mf or mf.get("value") in (None, ""):
            return None
        if mf.get("type") == "json":
            try:
                return json.loads(mf["value"])
            except ValueError:
                return mf["value"]
        return mf["value"]


    def update_order(
        self,
        order_gid: str,
        *,
        tags: Optional[List[str]] = None,
        metafields: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """
        标签走 tagsAdd（合并，不会覆盖已有标签）；
        metafield 走 metafieldsSet（同 namespace/key 覆盖写）。
        metafields 每项: {"namespace","key","type","value"}，ownerId 自动补上。
        """
        clean_tags = sorted({t for t in (tags or []) if t})
        if clean_tags:
            data = self.shopify_graphql_request(
                TAGS_ADD, {"id": order_gid, "tags": clean_tags}, op_name="order.tagsAdd"
            )
            _raise_on_user_errors("tagsAdd", data.get("tagsAdd") or {})

        if metafields:
            metas = [{**m, "ownerId": order_gid, "value": str(m["value"])} for m in metafields]
            data = self.shopify_graphql_request(
                METAFIELDS_SET, {"metafields": metas}, op_name="order.metafieldsSet"
            )
            _raise_on_user_errors("metafieldsSet", data.get("metafieldsSet") or {})


    def find_order_by_tag(self, tag: str) -> Optional[ShopifyOrderNode]:
        """精确按 tag 搜索订单，只取第一条。"""
        search = f"tag:{escape_tag_for_query(tag)}"
        data = self.shopify_graphql_request(
            ORDERS_BY_QUERY, {"query": search, "first": 1}, op_name="orders.byTag"
        )
        edges = ((data.get("orders") or {}).get("edges")) or []
        if not edges:
            return None
        return ShopifyOrderNode.model_validate(edges[0].get("node") or {})


    # ---------- 商品 ----------
    def get_product_tags(self, product_gid: str) -> Optional[ShopifyProductRef]:
        data = self.shopify_graphql_request(PRODUCT_TAGS, {"id": product_gid}, op_name="product.tags")
        node = data.get("product")
        if not node:
            return None
        return ShopifyProductRef(
            gid=node["id"],
            numeric_id=gid_to_numeric(node["id"]),
            handle=node.get("handle"),
            title=node.get("title"),
            tags=normalize_tags(node.get("tags")),
        )


    # ---------- 库存 ----------
    def get_product_inventory(self, product_gid: str) -> Optional[VariantInventory]:
        """商品第一个变体的 inventoryItem + 各 location 库存。商品不存在返回 None。"""
        data = self.shopify_graphql_request(
            PRODUCT_VARIANT_INVENTORY, {"id": product_gid}, op_name="product.variantInventory"
        )
        product = data.get("product")
        if not product:
            return None
        edges = ((product.get("variants") or {}).get("edges")) or []
        if not edges:
            return VariantInventory(product_gid=product["id"])

        variant = edges[0].get("node") or {}
        item = variant.get("inventoryItem") or {}
        return VariantInventory(
            product_gid=product["id"],
            variant_gid=variant.get("id"),
            inventory_item_id=item.get("id"),
            tracked=bool(item.get("tracked")),
            levels=parse_inventory_levels(item),
        )

    def get_inventory_levels(self, inventory_item_id: str) -> List[InventoryLevel]:
        data = self.shopify_graphql_request(
            INVENTORY_ITEM_LEVELS, {"id": inventory_item_id}, op_name="inventoryItem.levels"
        )
        return parse_inventory_levels(data.get("inventoryItem") or {})

    def enable_inventory_tracking(self, inventory_item_id: str) -> None:
        data = self.shopify_graphql_request(
            INVENTORY_ITEM_ENABLE_TRACKING, {"id": inventory_item_id}, op_name="inventoryItem.enableTracking"
        )
        _raise_on_user_errors("inventoryItemUpdate", data.get("inventoryItemUpdate") or {})

    def activate_inventory_at_location(self, inventory_item_id: str, location_gid: str) -> None:
        data = self.shopify_graphql_request(
            INVENTORY_ACTIVATE,
            {"inventoryItemId": inventory_item_id, "locationId": location_gid},
            op_name="inventory.activate",
        )
        payload = data.get("inventoryActivate") or {}
        user_errors = payload.get("userErrors") or []
        # 已激活的 item 会返回 "already active"，视为成功
        if user_errors and all("already" in str(e.get("message", "")).lower() for e in user_errors):
            logger.info("shopify.inventory.activate already_active item=%s location=%s", inventory_item_id, location_gid)
            return
        _raise_on_user_errors("inventoryActivate", payload)

    def set_on_hand_quantities(
        self,
        inventory_item_id: str,
        location_gid: str,
        quantity: int,
        *,
        reason: str = "correction",
    ) -> None:
        variables = {
            "input": {
                "reason": reason,
                "setQuantities": [
                    {"inventoryItemId": inventory_item_id, "locationId": location_gid, "quantity": int(quantity)}
                ],
            }
        }
        data = self.shopify_graphql_request(INVENTORY_SET_ON_HAND, variables, op_name="inventory.setOnHand")
        _raise_on_user_errors("inventorySetOnHandQuantities", data.get("inventorySetOnHandQuantities") or {})

    def update_inventory_level(self, inventory_item_id: str, location_gid: str, quantity: int) -> None:
        """直接把 available 写成目标值（不做 compare）。"""
        variables = {
            "input": {
                "name": "available",
                "reason": "correction",
                "ignoreCompareQuantity": True,
                "quantities": [
                    {"inventoryItemId": inventory_item_id, "locationId": location_gid, "quantity": int(quantity)}
                ],
            }
        }
        data = self.shopify_graphql_request(INVENTORY_SET_QUANTITIES, variables, op_name="inventory.setQuantities")
        _raise_on_user_errors("inventorySetQuantities", data.get("inventorySetQuantities") or {})
