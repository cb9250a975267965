from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from celery import shared_task

from bunjang_bridge.services.inventory_service import InventoryService


logger = logging.getLogger(__name__)


@shared_task(name="bunjang_bridge.orchestration.inventory_sync.inventory_sync_task.run_full_inventory_sync", bind=True)
def run_full_inventory_sync(self, job_id: Optional[str] = None) -> dict:
    job_id = job_id or self.request.id
    result = InventoryService().perform_full_inventory_sync(job_id)
    return asdict(result)


@shared_task(name="bunjang_bridge.orchestration.inventory_sync.inventory_sync_task.sync_single_inventory", bind=True)
def sync_single_inventory(self, bunjang_pid: str, job_id: Optional[str] = None) -> int:
    """单个商品：Bunjang 查得到就钉到 1（返回 1），查不到返回 -1。"""
    return InventoryService().check_and_sync_bunjang_inventory(bunjang_pid, job_id or self.request.id)
