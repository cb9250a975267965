"""
订单状态同步调度器（显式组件，不在 import 时注册任何东西）：
   start()  -> 往 celery beat_schedule 里注册 tick 条目
   stop()   -> 移除这些条目
   schedule_order_status_sync() -> 校验窗口后投递执行任务（非立即的带防抖延迟）

beat 条目：
   - 每小时整点：最近 2 小时
   - 每天 02:00：前一天整天（CELERY_TIMEZONE 本地日）
   - 可选每 30 分钟：最近 1 小时（BUNJANG_ENABLE_FREQUENT_SYNC）
"""
from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytz
from celery import Celery
from celery.schedules import crontab

from bunjang_bridge.core.config import settings
from bunjang_bridge.core.errors import ValidationError
from bunjang_bridge.services.status_sync_service import validate_window
from bunjang_bridge.utils.clock import iso_utc, now_utc, to_utc


logger = logging.getLogger(__name__)

TICK_TASK_NAME = "bunjang_bridge.orchestration.order_status_sync.tasks.tick_order_status_sync"

WINDOW_HOURLY = "hourly"
WINDOW_DAILY = "daily"
WINDOW_FREQUENT = "frequent"

# beat 条目名 -> (crontab 参数, 窗口类型)
_ENTRIES: Dict[str, Tuple[Dict[str, str], str]] = {
    "bunjang-order-status-hourly": ({"minute": "0"}, WINDOW_HOURLY),
    "bunjang-order-status-daily": ({"minute": "0", "hour": "2"}, WINDOW_DAILY),
    "bunjang-order-status-frequent": ({"minute": "*/30"}, WINDOW_FREQUENT),
}


def compute_window(kind: str, now: Optional[dt.datetime] = None, tzname: Optional[str] = None) -> Tuple[dt.datetime, dt.datetime]:
    """返回 (start, end)，均为 UTC aware。"""
    now = to_utc(now or now_utc())
    if kind == WINDOW_HOURLY:
        return now - dt.timedelta(hours=2), now
    if kind == WINDOW_FREQUENT:
        return now - dt.timedelta(hours=1), now
    if kind == WINDOW_DAILY:
        tz = pytz.timezone(tzname or settings.CELERY_TIMEZONE)
        today_local = now.astimezone(tz).date()
        start_local = tz.localize(dt.datetime.combine(today_local - dt.timedelta(days=1), dt.time.min))
        end_local = tz.localize(dt.datetime.combine(today_local, dt.time.min))
        return to_utc(start_local), to_utc(end_local)
    raise ValueError(f"unknown window kind: {kind}")


class OrderStatusSyncScheduler:

    def __init__(
        self,
        app: Celery,
        sync_task: Any = None,
        *,
        debounce_sec: Optional[int] = None,
        enable_frequent: Optional[bool] = None,
        clock: Callable[[], dt.datetime] = now_utc,
    ) -> None:
        self.app = app
        self._sync_task = sync_task
        self.debounce_sec = settings.ORDER_SYNC_DEBOUNCE_SEC if debounce_sec is None else debounce_sec
        self.enable_frequent = settings.BUNJANG_ENABLE_FREQUENT_SYNC if enable_frequent is None else enable_frequent
        self.clock = clock
        self._registered: List[str] = []

    @property
    def sync_task(self):
        if self._sync_task is None:
            from bunjang_bridge.orchestration.order_status_sync.tasks import sync_order_statuses_task
            self._sync_task = sync_order_statuses_task
        return self._sync_task

    @property
    def running(self) -> bool:
        return bool(self._registered)


    # ---------- lifecycle ----------
    def start(self) -> List[str]:
        schedule = self.app.conf.beat_schedule
        if schedule is None:
            schedule = self.app.conf.beat_schedule = {}

        for name, (cron, kind) in _ENTRIES.items():
            if kind == WINDOW_FREQUENT and not self.enable_frequent:
                continue
            schedule[name] = {
                "task": TICK_TASK_NAME,
                "schedule": crontab(**cron),
                "kwargs": {"window": kind},
                "options": {"queue": "orchestrator"},
            }
            if name not in self._registered:
                self._registered.append(name)

        logger.info("order_status_scheduler started entries=%s", self._registered)
        return list(self._registered)

    def stop(self) -> None:
        schedule = self.app.conf.beat_schedule or {}
        for name in self._registered:
            schedule.pop(name, None)
        logger.info("order_status_scheduler stopped entries=%s", self._registered)
        self._registered = []


    # ---------- 投递 ----------
    def schedule_order_status_sync(
        self,
        start: dt.datetime,
        end: dt.datetime,
        *,
        immediate: bool = False,
        job_id: Optional[str] = None,
    ) -> Optional[str]:
        """窗口超过 15 天只记日志、返回 None；否则投递任务并返回 task id。"""
        try:
            validate_window(start, end)
        except ValidationError as e:
            logger.error("order_status_scheduler rejected window start=%s end=%s err=%s details=%s",
                         iso_utc(start), iso_utc(end), e, e.details)
            return None

        job_id = job_id or f"order-status-{uuid.uuid4().hex[:12]}"
        countdown = 0 if immediate else self.debounce_sec
        result = self.sync_task.apply_async(
            kwargs={"start_iso": iso_utc(start), "end_iso": iso_utc(end), "job_id": job_id},
            countdown=countdown,
            task_id=job_id,
        )
        logger.info("order_status_scheduler enqueued job=%s window=%s..%s countdown=%s",
                    job_id, iso_utc(start), iso_utc(end), countdown)
        return result.id

    def schedule_window(self, kind: str) -> Optional[str]:
        start, end = compute_window(kind, self.clock())
        return self.schedule_order_status_sync(start, end, immediate=False, job_id=f"order-status-{kind}-{uuid.uuid4().hex[:8]}")

    def manual_order_sync(self, start: dt.datetime, end: dt.datetime) -> Dict[str, Any]:
        job_id = self.schedule_order_status_sync(start, end, immediate=True)
        if job_id is None:
            return {
                "success": False,
                "jobId": None,
                "message": f"Window rejected: at most {settings.BUNJANG_ORDER_MAX_RANGE_DAYS} days",
            }
        return {"success": True, "jobId": job_id, "message": "Order status sync queued"}
