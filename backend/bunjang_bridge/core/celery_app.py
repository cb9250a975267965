# Celery 应用 + 队列 + 订单状态同步的 beat 注册

from celery import Celery
from kombu import Exchange, Queue
from bunjang_bridge.core.config import settings
from bunjang_bridge.core.logging import configure_logging

configure_logging()


'''
初始化 Celery 应用/实例
   - Beat: 1 台（订单状态轮询）
   - Worker: 消费 orchestrator / bunjang_io 队列
'''
celery_app = Celery(
    "bunjang_bridge",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "bunjang_bridge.orchestration.order_status_sync.tasks",          # 订单状态同步（beat tick + 执行任务）
        "bunjang_bridge.orchestration.inventory_sync.inventory_sync_task",  # 库存全量 / 单个同步
    ],
)


celery_app.conf.update(
    timezone=settings.CELERY_TIMEZONE,           # 时区，默认首尔
    enable_utc=True,                             # 内部还是存 UTC
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_track_started=True,
    broker_connection_retry_on_startup=True,
    worker_prefetch_multiplier=1,                # 一个 worker 一次只取一个任务
    task_acks_late=True,                         # 任务执行完再确认，worker crash 后任务回队列
    broker_heartbeat=30,
    broker_pool_limit=10,
    task_always_eager=settings.SYNC_TASKS_INLINE,      # 调试：任务在当前进程同步执行
    task_eager_propagates=settings.SYNC_TASKS_INLINE,
)


'''
队列拆分：
   - orchestrator：beat tick，只做窗口计算 + 投递，很快
   - bunjang_io：真正调用 Bunjang / Shopify 的任务，慢 I/O，建议单独 worker 低并发消费
'''
celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),
    Queue("orchestrator", Exchange("orchestrator"), routing_key="orchestrator"),
    Queue("bunjang_io", Exchange("bunjang_io"), routing_key="bunjang_io"),
)
celery_app.conf.task_default_queue = "default"


celery_app.conf.task_routes = {
    "bunjang_bridge.orchestration.order_status_sync.tasks.tick_order_status_sync": {"queue": "orchestrator"},
    "bunjang_bridge.orchestration.order_status_sync.tasks.sync_order_statuses_task": {"queue": "bunjang_io"},
    "bunjang_bridge.orchestration.inventory_sync.inventory_sync_task.run_full_inventory_sync": {"queue": "bunjang_io"},
    "bunjang_bridge.orchestration.inventory_sync.inventory_sync_task.sync_single_inventory": {"queue": "bunjang_io"},
}


# 静态调度为空：订单状态同步的条目由 OrderStatusSyncScheduler.start() 注册
celery_app.conf.beat_schedule = {}


@celery_app.on_after_configure.connect
def _register_order_status_schedule(sender, **kwargs) -> None:
    if not settings.ORDER_SYNC_SCHEDULER_ENABLED:
        return
    from bunjang_bridge.orchestration.order_status_sync.scheduler import OrderStatusSyncScheduler

    OrderStatusSyncScheduler(sender).start()
