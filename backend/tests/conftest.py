"""
公共 fixture：
  - 内存 sqlite 的 session_factory（每个测试独立建表）
  - FakeShopify / FakeBunjang：只在内存里记录调用与状态，不访问外网
"""
import os

# 必须在 import bunjang_bridge 之前设置：settings 和 engine 在 import 时初始化
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SHOPIFY_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("ORDER_SYNC_SCHEDULER_ENABLED", "false")
os.environ.setdefault("BUNJANG_GLOBAL_RL_ENABLED", "false")

from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bunjang_bridge.db.base import Base
from bunjang_bridge.db.model import SyncedProduct  # noqa: F401  注册模型到 Base.metadata
from bunjang_bridge.integrations.bunjang import (
    BunjangOrderCreated, BunjangOrderPage, BunjangProduct, PointBalance,
)
from bunjang_bridge.integrations.shopify.payload_utils import (
    InventoryLevel, ShopifyOrderNode, ShopifyProductRef, VariantInventory,
)


WAREHOUSE_GID = "gid://shopify/Location/1"


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def warehouse_gid() -> str:
    return WAREHOUSE_GID


# ---------------- Shopify ----------------

class FakeShopify:
    """
    订单：tags 合并写（集合），metafield 覆盖写，和真实 Admin API 语义一致。
    库存：按 inventory item 记录 tracked + {location: quantity}。
    """

    def __init__(self) -> None:
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.products: Dict[str, ShopifyProductRef] = {}
        self.items: Dict[str, Dict[str, Any]] = {}
        self.product_items: Dict[str, str] = {}
        self.calls: List[tuple] = []

        self.fail_metafield_read = False
        self.fail_product_inventory: set = set()
        self.ignore_set_on_hand = False   # 模拟写入后回读不一致

    # ---- setup helpers ----
    def add_order(self, gid: str, tags: Optional[List[str]] = None) -> None:
        self.orders[gid] = {"tags": set(tags or []), "metafields": {}}

    def add_product(self, gid: str, tags: List[str], handle: str = "item", title: str = "Item") -> None:
        self.products[gid] = ShopifyProductRef(
            gid=gid, numeric_id=gid.rsplit("/", 1)[-1], handle=handle, title=title, tags=tags,
        )

    def add_inventory(self, product_gid: str, *, levels: Optional[Dict[str, int]] = None, tracked: bool = True) -> str:
        item_id = f"gid://shopify/InventoryItem/{len(self.items) + 1}"
        self.items[item_id] = {"tracked": tracked, "levels": dict(levels or {})}
        self.product_items[product_gid] = item_id
        return item_id

    def tags_of(self, gid: str) -> set:
        return self.orders[gid]["tags"]

    def metafield(self, gid: str, namespace: str, key: str) -> Optional[str]:
        return self.orders[gid]["metafields"].get((namespace, key))

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    # ---- orders ----
    def get_order_metafield(self, order_gid: str, namespace: str, key: str) -> Optional[Any]:
        self.calls.append(("get_order_metafield", order_gid, namespace, key))
        if self.fail_metafield_read:
            raise RuntimeError("metafield read failed")
        return self.orders.setdefault(order_gid, {"tags": set(), "metafields": {}})["metafields"].get((namespace, key))

    def update_order(self, order_gid: str, *, tags=None, metafields=None) -> None:
        self.calls.append(("update_order", order_gid, list(tags or []), list(metafields or [])))
        order = self.orders.setdefault(order_gid, {"tags": set(), "metafields": {}})
        order["tags"].update(tags or [])
        for mf in metafields or []:
            order["metafields"][(mf["namespace"], mf["key"])] = mf["value"]

    def find_order_by_tag(self, tag: str) -> Optional[ShopifyOrderNode]:
        self.calls.append(("find_order_by_tag", tag))
        for gid, order in self.orders.items():
            if tag in order["tags"]:
                return ShopifyOrderNode(id=gid, tags=sorted(order["tags"]))
        return None

    # ---- products ----
    def get_product_tags(self, product_gid: str) -> Optional[ShopifyProductRef]:
        self.calls.append(("get_product_tags", product_gid))
        return self.products.get(product_gid)

    # ---- inventory ----
    def _levels(self, item_id: str) -> List[InventoryLevel]:
        return [
            InventoryLevel(location_id=loc, location_name="Bunjang Warehouse", on_hand=qty, available=qty)
            for loc, qty in self.items[item_id]["levels"].items()
        ]

    def get_product_inventory(self, product_gid: str) -> Optional[VariantInventory]:
        self.calls.append(("get_product_inventory", product_gid))
        if product_gid in self.fail_product_inventory:
            raise RuntimeError("shopify unavailable")
        item_id = self.product_items.get(product_gid)
        if item_id is None:
            return None
        return VariantInventory(
            product_gid=product_gid,
            variant_gid=f"gid://shopify/ProductVariant/{item_id.rsplit('/', 1)[-1]}",
            inventory_item_id=item_id,
            tracked=self.items[item_id]["tracked"],
            levels=self._levels(item_id),
        )

    def get_inventory_levels(self, inventory_item_id: str) -> List[InventoryLevel]:
        self.calls.append(("get_inventory_levels", inventory_item_id))
        return self._levels(inventory_item_id)

    def enable_inventory_tracking(self, inventory_item_id: str) -> None:
        self.calls.append(("enable_inventory_tracking", inventory_item_id))
        self.items[inventory_item_id]["tracked"] = True

    def activate_inventory_at_location(self, inventory_item_id: str, location_gid: str) -> None:
        self.calls.append(("activate_inventory_at_location", inventory_item_id, location_gid))
        self.items[inventory_item_id]["levels"].setdefault(location_gid, 0)

    def set_on_hand_quantities(self, inventory_item_id: str, location_gid: str, quantity: int, *, reason: str = "correction") -> None:
        self.calls.append(("set_on_hand_quantities", inventory_item_id, location_gid, quantity, reason))
        if not self.ignore_set_on_hand:
            self.items[inventory_item_id]["levels"][location_gid] = quantity

    def update_inventory_level(self, inventory_item_id: str, location_gid: str, quantity: int) -> None:
        self.calls.append(("update_inventory_level", inventory_item_id, location_gid, quantity))
        self.items[inventory_item_id]["levels"][location_gid] = quantity


# ---------------- Bunjang ----------------

class FakeBunjang:

    def __init__(self) -> None:
        self.products: Dict[str, Optional[BunjangProduct]] = {}
        self.create_errors: Dict[str, BaseException] = {}
        self.no_order_id: set = set()
        self.created_payloads: List[Dict[str, Any]] = []
        self.balance = 5_000_000
        self.order_pages: List[BunjangOrderPage] = []
        self.order_calls: List[Dict[str, Any]] = []
        self._next_order_id = 9001

    def add_product(self, pid: str, *, price: int = 50000, quantity: int = 1, shipping_fee: int = 3000) -> BunjangProduct:
        product = BunjangProduct(pid=pid, name=f"Listing {pid}", price=price, quantity=quantity, shippingFee=shipping_fee)
        self.products[pid] = product
        return product

    def get_bunjang_product_details(self, pid: str) -> Optional[BunjangProduct]:
        return self.products.get(str(pid))

    def create_bunjang_order_v2(self, payload: Dict[str, Any]) -> BunjangOrderCreated:
        self.created_payloads.append(payload)
        pid = str(payload["product"]["id"])
        if pid in self.create_errors:
            raise self.create_errors[pid]
        if pid in self.no_order_id:
            return BunjangOrderCreated(id=None)
        order_id = str(self._next_order_id)
        self._next_order_id += 1
        return BunjangOrderCreated(id=order_id)

    def get_bunjang_point_balance(self) -> PointBalance:
        return PointBalance(balance=self.balance)

    def get_bunjang_orders(self, start, end, *, page: int = 0, size: int = 100) -> BunjangOrderPage:
        self.order_calls.append({"start": start, "end": end, "page": page, "size": size})
        if page < len(self.order_pages):
            return self.order_pages[page]
        return BunjangOrderPage(data=[], totalPages=len(self.order_pages), page=page)


@pytest.fixture
def fake_shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture
def fake_bunjang() -> FakeBunjang:
    return FakeBunjang()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def order_payload():
    """构造 Shopify orders/create webhook payload（只含用得到的字段）。"""

    def _build(order_id: int = 1001, product_ids=(501,), **extra) -> Dict[str, Any]:
        payload = {
            "id": order_id,
            "admin_graphql_api_id": f"gid://shopify/Order/{order_id}",
            "name": f"#{order_id}",
            "tags": "",
            "line_items": [
                {"id": 7000 + idx, "product_id": pid, "variant_id": 8000 + idx, "title": f"Item {pid}", "quantity": 1}
                for idx, pid in enumerate(product_ids)
            ],
        }
        payload.update(extra)
        return payload

    return _build

