"""
Shopify 边界上的类型化记录。
webhook payload / GraphQL 响应先在这里校验成 pydantic 模型，业务层只消费模型。
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


PRODUCT_GID_PREFIX = "gid://shopify/Product/"
ORDER_GID_PREFIX = "gid://shopify/Order/"


def normalize_tags(value: Any) -> List[str]:
    """
    将 Shopify 返回的标签（通常为 list[str]）归一化为字符串列表。
    webhook 里的 tags 是逗号分隔的字符串，也做兼容处理。
    """
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if isinstance(v, str) and str(v).strip()]
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return []


def gid_to_numeric(gid: Union[str, int, None]) -> Optional[str]:
    """gid://shopify/Product/123 -> "123"；已是数字则原样返回。"""
    if gid is None:
        return None
    raw = str(gid).strip()
    if not raw:
        return None
    return raw.rsplit("/", 1)[-1]


def to_gid(kind: str, value: Union[str, int]) -> str:
    raw = str(value).strip()
    if raw.startswith("gid://"):
        return raw
    return f"gid://shopify/{kind}/{raw}"


# ---------------- webhook payload ----------------

class _Lenient(BaseModel):
    # webhook payload 字段很多，只取需要的
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ShopifyLineItem(_Lenient):
    id: Optional[int] = None
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    quantity: int = Field(ge=1)


class ShopifyOrderPayload(_Lenient):
    id: int
    admin_graphql_api_id: str
    name: Optional[str] = None
    line_items: List[ShopifyLineItem] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    cancelled_at: Optional[str] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, v: Any) -> List[str]:
        return normalize_tags(v)


class ShopifyProductDeletedPayload(_Lenient):
    id: int

    @property
    def gid(self) -> str:
        return to_gid("Product", self.id)


# ---------------- GraphQL 响应 ----------------

class ShopifyProductRef(_Lenient):
    gid: str
    numeric_id: Optional[str] = None
    handle: Optional[str] = None
    title: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class InventoryLevel(_Lenient):
    location_id: str
    location_name: Optional[str] = None
    available: Optional[int] = None
    on_hand: Optional[int] = None

    @property
    def quantity(self) -> Optional[int]:
        # on_hand 优先；老版本 API 只有 available
        return self.on_hand if self.on_hand is not None else self.available


class VariantInventory(_Lenient):
    product_gid: str
    variant_gid: Optional[str] = None
    inventory_item_id: Optional[str] = None
    tracked: bool = False
    levels: List[InventoryLevel] = Field(default_factory=list)

    def level_at(self, location_gid: str) -> Optional[InventoryLevel]:
        for lvl in self.levels:
            if lvl.location_id == location_gid:
                return lvl
        return None


class ShopifyOrderNode(_Lenient):
    id: str
    name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    cancelled_at: Optional[str] = Field(default=None, alias="cancelledAt")

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, v: Any) -> List[str]:
        return normalize_tags(v)


def parse_inventory_levels(item: Dict[str, Any]) -> List[InventoryLevel]:
    """inventoryItem.inventoryLevels.edges -> List[InventoryLevel]"""
    levels: List[InventoryLevel] = []
    edges = ((item or {}).get("inventoryLevels") or {}).get("edges") or []
    for edge in edges:
        node = edge.get("node") or {}
        loc = node.get("location") or {}
        if not loc.get("id"):
            continue
        qty = {q.get("name"): q.get("quantity") for q in (node.get("quantities") or [])}
        # 老版本 API 直接返回 available 字段
        available = qty.get("available", node.get("available"))
        levels.append(
            InventoryLevel(
                location_id=loc["id"],
                location_name=loc.get("name"),
                available=available,
                on_hand=qty.get("on_hand"),
            )
        )
    return levels
