import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(processName)s | %(name)s | %(message)s"
DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# 第三方库默认只打 WARNING 以上（requests 每次重连都会打 INFO）
NOISY_LOGGERS = ("urllib3", "httpx", "kombu", "amqp")


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    API 进程（uvicorn）和 Celery worker / beat 共用一套日志格式。
    uvicorn 会先装好 handler，这里只调级别；worker 里没有 handler 时补一个 stdout handler。
    """
    resolved_level = (level or DEFAULT_LEVEL).upper()
    root_logger = logging.getLogger()

    if not root_logger.handlers:
        logging.basicConfig(
            level=resolved_level,
            format=LOG_FORMAT,
            handlers=[logging.StreamHandler(sys.stdout)],
        )
    else:
        root_logger.setLevel(resolved_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    return logging.getLogger("bunjang_bridge")


def job_prefix(job_id: Optional[str]) -> str:
    """统一日志前缀，串联同一 webhook / 任务的多行日志：[job=<id>]"""
    return f"[job={job_id or 'N/A'}]"


logger = configure_logging()
