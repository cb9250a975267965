"""Celery 任务函数体：直接调用 .run()，服务层替换成 Fake 网关。"""
from bunjang_bridge.integrations.bunjang import BunjangOrderPage
from bunjang_bridge.orchestration.inventory_sync import inventory_sync_task
from bunjang_bridge.orchestration.order_status_sync import tasks
from bunjang_bridge.services.inventory_service import InventoryService
from bunjang_bridge.services.status_sync_service import StatusSyncService


def test_sync_order_statuses_task_runs_service(monkeypatch, fake_shopify, fake_bunjang):
    fake_shopify.add_order("gid://shopify/Order/1", tags=["BunjangOrder-5001"])
    fake_bunjang.order_pages = [BunjangOrderPage.model_validate({
        "data": [{"id": 5001, "orderItems": [{"status": "RETURNED", "product": {"id": 111}}]}],
        "totalPages": 1,
    })]
    monkeypatch.setattr(tasks, "StatusSyncService",
                        lambda: StatusSyncService(shopify=fake_shopify, bunjang=fake_bunjang))

    result = tasks.sync_order_statuses_task.run("2026-03-01T00:00:00.000Z", "2026-03-01T02:00:00.000Z", "job-7")

    assert result == {"success": True, "syncedOrders": 1, "errors": 0}
    start = fake_bunjang.order_calls[0]["start"]
    assert start.isoformat() == "2026-03-01T00:00:00+00:00"


def test_tick_delegates_to_scheduler(monkeypatch):
    seen = []
    monkeypatch.setattr(tasks.OrderStatusSyncScheduler, "schedule_window",
                        lambda self, kind: seen.append(kind) or f"job-{kind}")

    assert tasks.tick_order_status_sync.run("hourly") == "job-hourly"
    assert seen == ["hourly"]


def test_inventory_tasks(monkeypatch, fake_shopify, fake_bunjang, session_factory, warehouse_gid):
    service = InventoryService(shopify=fake_shopify, bunjang=fake_bunjang, session_factory=session_factory,
                               sleep=lambda _s: None, location_gid=warehouse_gid)
    monkeypatch.setattr(inventory_sync_task, "InventoryService", lambda: service)

    assert inventory_sync_task.run_full_inventory_sync.run("job-full") == {
        "total": 0, "synced": 0, "failed": 0, "errors": [],
    }
    assert inventory_sync_task.sync_single_inventory.run("404", "job-1") == -1
