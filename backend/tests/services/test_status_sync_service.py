"""StatusSyncService：Bunjang 订单状态 -> Shopify 订单标签 / metafield。"""
from datetime import datetime, timedelta, timezone

import pytest

from bunjang_bridge.core.errors import ValidationError
from bunjang_bridge.integrations.bunjang import BunjangOrderPage
from bunjang_bridge.services.status_sync_service import StatusSyncService, validate_window


START = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _page(orders, *, total_pages: int, page: int) -> BunjangOrderPage:
    return BunjangOrderPage.model_validate({"data": orders, "totalPages": total_pages, "page": page})


def _order(order_id: int, status: str, product_id: int = 111, **item_extra) -> dict:
    item = {"id": order_id * 10, "status": status, "product": {"id": product_id, "name": "x", "price": 1000}}
    item.update(item_extra)
    return {"id": order_id, "orderItems": [item]}


@pytest.fixture
def service(fake_shopify, fake_bunjang) -> StatusSyncService:
    return StatusSyncService(shopify=fake_shopify, bunjang=fake_bunjang, page_size=2)


# 方法 1：窗口校验：正好 15 天可以，多 1 秒不行，反向不行
def test_validate_window_bounds():
    validate_window(START, START + timedelta(days=15))

    with pytest.raises(ValidationError) as exc:
        validate_window(START, START + timedelta(days=15, seconds=1))
    assert exc.value.details[0]["field"] == "dateRange"

    with pytest.raises(ValidationError):
        validate_window(START, START - timedelta(seconds=1))


# 方法 2：超长窗口在发请求之前就拒绝
def test_sync_rejects_long_window(service, fake_bunjang):
    with pytest.raises(ValidationError):
        service.sync_bunjang_order_statuses(START, START + timedelta(days=16), "job-1")
    assert fake_bunjang.order_calls == []


# 方法 3：翻页直到最后一页；采购确认写 metafield
def test_sync_paginates_and_stamps(service, fake_shopify, fake_bunjang):
    fake_shopify.add_order("gid://shopify/Order/1", tags=["BunjangOrder-5001"])
    fake_shopify.add_order("gid://shopify/Order/2", tags=["BunjangOrder-5002"])
    fake_bunjang.order_pages = [
        _page([_order(5001, "PURCHASE_CONFIRM", purchaseConfirmedAt="2026-03-02T00:00:00Z")], total_pages=2, page=0),
        _page([_order(5002, "SHIP_READY")], total_pages=2, page=1),
    ]

    result = service.sync_bunjang_order_statuses(START, START + timedelta(days=1), "job-1")

    assert result.as_dict() == {"success": True, "syncedOrders": 2, "errors": 0}
    assert [c["page"] for c in fake_bunjang.order_calls] == [0, 1]
    assert fake_bunjang.order_calls[0]["size"] == 2

    assert fake_shopify.metafield("gid://shopify/Order/1", "bunjang", "purchase_confirmed") == "true"
    assert fake_shopify.metafield("gid://shopify/Order/1", "bunjang", "purchase_confirmed_at") == "2026-03-02T00:00:00Z"
    assert fake_shopify.metafield("gid://shopify/Order/1", "bunjang", "last_bunjang_status") == "PURCHASE_CONFIRM"
    assert fake_shopify.metafield("gid://shopify/Order/2", "bunjang", "last_bunjang_status") == "SHIP_READY"
    assert fake_shopify.metafield("gid://shopify/Order/2", "bunjang", "last_status_sync") is not None


# 方法 4：取消 / 退货打标签；重复执行结果不变
def test_cancel_status_tags_are_idempotent(service, fake_shopify, fake_bunjang):
    fake_shopify.add_order("gid://shopify/Order/1", tags=["BunjangOrder-5001"])
    fake_bunjang.order_pages = [_page([_order(5001, "REFUNDED")], total_pages=1, page=0)]

    service.sync_bunjang_order_statuses(START, START + timedelta(hours=2), "job-1")
    first = set(fake_shopify.tags_of("gid://shopify/Order/1"))
    service.sync_bunjang_order_statuses(START, START + timedelta(hours=2), "job-2")

    assert fake_shopify.tags_of("gid://shopify/Order/1") == first
    assert {"BunjangStatus-REFUNDED", "BunjangOrder-5001-REFUNDED"} <= first


# 方法 5：找不到 Shopify 订单只跳过；单个订单异常只计数，不中断翻页
def test_missing_order_skipped_and_errors_counted(service, fake_shopify, fake_bunjang, monkeypatch):
    fake_shopify.add_order("gid://shopify/Order/3", tags=["BunjangOrder-5003"])
    fake_bunjang.order_pages = [
        _page([_order(5001, "IN_TRANSIT"), _order(5002, "PURCHASE_CONFIRM")], total_pages=2, page=0),
        _page([_order(5003, "RETURNED")], total_pages=2, page=1),
    ]

    original = fake_shopify.find_order_by_tag

    def _find(tag):
        if tag == "BunjangOrder-5002":
            raise RuntimeError("search failed")
        return original(tag)

    monkeypatch.setattr(fake_shopify, "find_order_by_tag", _find)

    result = service.sync_bunjang_order_statuses(START, START + timedelta(days=3), "job-1")

    assert result.success is True
    assert result.errors == 1
    assert result.synced_orders == 2
    assert "BunjangStatus-RETURNED" in fake_shopify.tags_of("gid://shopify/Order/3")
    assert [c["page"] for c in fake_bunjang.order_calls] == [0, 1]


# 方法 6：没有数据直接结束
def test_empty_window(service, fake_bunjang):
    result = service.sync_bunjang_order_statuses(START, START + timedelta(hours=1))

    assert result.as_dict() == {"success": True, "syncedOrders": 0, "errors": 0}
    assert len(fake_bunjang.order_calls) == 1


# 方法 7：同页一条订单缺字段只计入 errors，同页其它订单照常处理
def test_malformed_order_counted_without_stopping_page(service, fake_shopify, fake_bunjang):
    fake_shopify.add_order("gid://shopify/Order/1", tags=["BunjangOrder-5001"])
    broken = {"id": 5002, "orderItems": [{"id": 1, "status": "REFUNDED"}]}
    fake_bunjang.order_pages = [_page([_order(5001, "REFUNDED"), broken], total_pages=1, page=0)]

    result = service.sync_bunjang_order_statuses(START, START + timedelta(hours=2), "job-1")

    assert result.as_dict() == {"success": True, "syncedOrders": 1, "errors": 1}
    assert "BunjangStatus-REFUNDED" in fake_shopify.tags_of("gid://shopify/Order/1")
