from __future__ import annotations

import logging
from typing import Optional

import requests
from celery import shared_task

from bunjang_bridge.core.celery_app import celery_app
from bunjang_bridge.core.errors import ExternalServiceError
from bunjang_bridge.orchestration.order_status_sync.scheduler import OrderStatusSyncScheduler
from bunjang_bridge.services.status_sync_service import StatusSyncService
from bunjang_bridge.utils.clock import parse_iso


logger = logging.getLogger(__name__)


'''
beat tick：只算窗口 + 带防抖投递执行任务
'''
@shared_task(name="bunjang_bridge.orchestration.order_status_sync.tasks.tick_order_status_sync")
def tick_order_status_sync(window: str) -> Optional[str]:
    return OrderStatusSyncScheduler(celery_app).schedule_window(window)


'''
执行任务：网络 / 外部服务错误自动重试 3 次，指数退避 5s, 10s, 20s
窗口非法（ValidationError）不重试
'''
@shared_task(
    name="bunjang_bridge.orchestration.order_status_sync.tasks.sync_order_statuses_task",
    bind=True,
    autoretry_for=(ExternalServiceError, requests.RequestException),
    max_retries=3,
    retry_backoff=5,
    retry_backoff_max=300,
    retry_jitter=False,
)
def sync_order_statuses_task(self, start_iso: str, end_iso: str, job_id: Optional[str] = None) -> dict:
    job_id = job_id or self.request.id
    logger.info("[job=%s] sync_order_statuses_task attempt=%s window=%s..%s",
                job_id, self.request.retries, start_iso, end_iso)
    result = StatusSyncService().sync_bunjang_order_statuses(parse_iso(start_iso), parse_iso(end_iso), job_id)
    return result.as_dict()
