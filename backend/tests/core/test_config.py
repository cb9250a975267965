from bunjang_bridge.core.config import Settings


# 默认值和业务约束保持一致（15 天窗口、每页 100、仓库 location、防抖）
def test_settings_defaults(monkeypatch):
    for name in ("BUNJANG_ORDER_MAX_RANGE_DAYS", "BUNJANG_ORDERS_PAGE_SIZE", "BUNJANG_WAREHOUSE_LOCATION_ID",
                 "BUNJANG_HALT_ON_POINT_SHORTAGE", "ORDER_SYNC_DEBOUNCE_SEC", "BUNJANG_ORDER_IDENTIFIER_PREFIX",
                 "SHOPIFY_SHOP"):
        monkeypatch.delenv(name, raising=False)

    s = Settings(_env_file=None)

    assert s.BUNJANG_ORDER_MAX_RANGE_DAYS == 15
    assert s.BUNJANG_ORDERS_PAGE_SIZE == 100
    assert s.BUNJANG_HALT_ON_POINT_SHORTAGE is False
    assert s.ORDER_SYNC_DEBOUNCE_SEC == 60
    assert s.BUNJANG_ORDER_IDENTIFIER_PREFIX == "BunjangOrder-"
    assert s.bunjang_warehouse_gid == "gid://shopify/Location/82604261625"
    assert s.SHOPIFY_SHOP is None


def test_settings_env_override(monkeypatch):
    monkeypatch.setenv("BUNJANG_WAREHOUSE_LOCATION_ID", "42")
    monkeypatch.setenv("BUNJANG_HALT_ON_POINT_SHORTAGE", "true")

    s = Settings(_env_file=None)

    assert s.bunjang_warehouse_gid == "gid://shopify/Location/42"
    assert s.BUNJANG_HALT_ON_POINT_SHORTAGE is True
