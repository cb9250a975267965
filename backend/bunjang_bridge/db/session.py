# Engine/Session 工厂 + FastAPI 依赖

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from bunjang_bridge.core.config import settings


def _engine_kwargs(url: str) -> Dict[str, Any]:
    # sqlite（本地调试）不支持连接池参数
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,            # 常驻连接
        "max_overflow": 20,         # 高峰期额外连接
        "pool_pre_ping": True,      # 连接失效探测
        "pool_recycle": 1800,       # 半小时回收一次，防止长连接被中间设备断开
    }


# ---- Engine ----
engine = create_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    **_engine_kwargs(settings.DATABASE_URL),
)


# ---- Session Factory ----
# autocommit=False, autoflush=False：事务与 flush 时机由 repository 显式控制
SessionLocal: sessionmaker[Session] = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,  # 提交后对象仍可用（减少再次查询）
    class_=Session,
    future=True,
)


'''
FastAPI 依赖：为每个请求提供独立会话
用法：
from bunjang_bridge.db.session import get_db
def endpoint(db: Session = Depends(get_db)): ...
'''
def get_db() -> Generator[Session, None, None]:
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---- service / Celery 任务里的上下文管理器 ----
@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    db: Session = (factory or SessionLocal)()
    try:
        yield db    # 是否 commit 由 repository 决定
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def dispose_engine() -> None:
    """释放连接池中的所有连接；在 FastAPI 的 shutdown 钩子中调用。"""
    engine.dispose()
