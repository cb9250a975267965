''' 运营相关的接口（手动触发订单状态同步、库存同步） '''

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from bunjang_bridge.core.celery_app import celery_app
from bunjang_bridge.orchestration.inventory_sync.inventory_sync_task import (
    run_full_inventory_sync, sync_single_inventory,
)
from bunjang_bridge.orchestration.order_status_sync.scheduler import OrderStatusSyncScheduler


router = APIRouter(prefix="/ops", tags=["ops"])


class OrderStatusSyncRequest(BaseModel):
    start: datetime
    end: datetime


# 依赖：测试里用 app.dependency_overrides 换成假任务，不连 broker
def get_order_status_scheduler() -> OrderStatusSyncScheduler:
    return OrderStatusSyncScheduler(celery_app)


def get_full_inventory_task():
    return run_full_inventory_sync


def get_single_inventory_task():
    return sync_single_inventory


''' 手动触发订单状态同步（立即执行，不走防抖） '''
@router.post("/order-status-sync")
def ops_order_status_sync(
    body: OrderStatusSyncRequest,
    scheduler: OrderStatusSyncScheduler = Depends(get_order_status_scheduler),
):
    result = scheduler.manual_order_sync(body.start, body.end)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["message"])
    return result


''' 全量库存同步：所有 SYNCED 映射重新钉到 1 '''
@router.post("/inventory/full-sync")
def ops_full_inventory_sync(task=Depends(get_full_inventory_task)):
    task_id = task.delay().id
    return {"task_id": task_id}


''' 单个商品库存同步 '''
@router.post("/inventory/{bunjang_pid}/sync")
def ops_single_inventory_sync(bunjang_pid: str, task=Depends(get_single_inventory_task)):
    task_id = task.delay(bunjang_pid).id
    return {"task_id": task_id, "bunjang_pid": bunjang_pid}
