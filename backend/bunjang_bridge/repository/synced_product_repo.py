# synced_products (Bunjang listing <-> Shopify product 映射) database repository

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bunjang_bridge.db.model.synced_product import SyncedProduct, SyncStatus
from bunjang_bridge.utils.clock import now_utc


logger = logging.getLogger(__name__)

PRODUCT_GID_PREFIX = "gid://shopify/Product/"

# update_fields 允许写入的字段白名单：主键 bunjang_pid 不可改
_UPDATABLE_FIELDS = {
    c for c in SyncedProduct.__table__.columns.keys()
    if c not in {"bunjang_pid", "created_at", "updated_at"}
}


def product_gid(product_id: Union[int, str]) -> str:
    value = str(product_id).strip()
    if value.startswith(PRODUCT_GID_PREFIX):
        return value
    return f"{PRODUCT_GID_PREFIX}{value}"


# ---------- Query ----------
def get_by_pid(db: Session, bunjang_pid: str) -> Optional[SyncedProduct]:
    return db.get(SyncedProduct, str(bunjang_pid))


def get_by_shopify_gid(db: Session, shopify_gid: str) -> Optional[SyncedProduct]:
    stmt = select(SyncedProduct).where(SyncedProduct.shopify_gid == shopify_gid)
    return db.scalars(stmt).first()


def get_by_shopify_product_id(db: Session, product_id: Union[int, str]) -> Optional[SyncedProduct]:
    """数字 ID 以字符串落库；int / str 两种入参都能命中。"""
    candidates = {str(product_id).strip()}
    if isinstance(product_id, str) and product_id.strip().isdigit():
        candidates.add(str(int(product_id)))
    stmt = select(SyncedProduct).where(SyncedProduct.shopify_product_id.in_(candidates))
    return db.scalars(stmt).first()


def find_for_shopify_product(db: Session, product_id: Union[int, str, None]) -> Optional[SyncedProduct]:
    """
    按顺序查找 line item 对应的映射：
      1) 由数字 ID 推导的 product GID
      2) 存储的数字 ID（数字形式）
      3) 存储的数字 ID（字符串形式）
    """
    if product_id is None or str(product_id).strip() == "":
        return None

    row = get_by_shopify_gid(db, product_gid(product_id))
    if row is not None:
        return row

    raw = str(product_id).strip()
    if raw.isdigit():
        row = get_by_shopify_product_id(db, int(raw))
        if row is not None:
            return row
    return get_by_shopify_product_id(db, raw)


def list_synced(db: Session, *, limit: int = 1000) -> List[SyncedProduct]:
    """全量库存同步的候选：sync_status=SYNCED 且已关联 Shopify，未被策略排除。"""
    stmt = (
        select(SyncedProduct)
        .where(
            SyncedProduct.sync_status == SyncStatus.SYNCED,
            SyncedProduct.is_filtered_out.is_(False),
            or_(SyncedProduct.shopify_gid.is_not(None), SyncedProduct.shopify_product_id.is_not(None)),
        )
        .order_by(SyncedProduct.bunjang_pid.asc())
        .limit(max(1, int(limit)))
    )
    return list(db.scalars(stmt))


# ---------- Mutations ----------
def create_link(
    db: Session,
    *,
    bunjang_pid: str,
    shopify_gid: str,
    shopify_product_id: Optional[str] = None,
    shopify_handle: Optional[str] = None,
    product_name: Optional[str] = None,
    sync_status: SyncStatus = SyncStatus.SYNCED,
) -> SyncedProduct:
    """
    新建映射（订单触发的 tag 自动关联 / 显式同步）。
    并发下另一个 webhook 可能已经插入同一 pid：IntegrityError 时回滚并返回已存在的行。
    """
    now = now_utc()
    row = SyncedProduct(
        bunjang_pid=str(bunjang_pid),
        shopify_gid=shopify_gid,
        shopify_product_id=str(shopify_product_id) if shopify_product_id is not None else None,
        shopify_handle=shopify_handle,
        bunjang_product_name=product_name,
        sync_status=sync_status,
        last_sync_attempt_at=now,
        last_successful_sync_at=now if sync_status == SyncStatus.SYNCED else None,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_by_pid(db, bunjang_pid) or get_by_shopify_gid(db, shopify_gid)
        if existing is None:
            raise
        logger.info("synced_product.create_link race pid=%s existing_gid=%s", bunjang_pid, existing.shopify_gid)
        return existing
    return row


def update_fields(db: Session, bunjang_pid: str, /, **fields: Any) -> Optional[SyncedProduct]:
    """只更新白名单内的字段；不存在返回 None。last-write-wins。"""
    clean: Dict[str, Any] = {k: v for k, v in fields.items() if k in _UPDATABLE_FIELDS}
    unknown = set(fields) - set(clean)
    if unknown:
        raise ValueError(f"unknown synced_products fields: {sorted(unknown)}")
    if not clean:
        return get_by_pid(db, bunjang_pid)

    res = db.execute(
        update(SyncedProduct).where(SyncedProduct.bunjang_pid == str(bunjang_pid)).values(**clean)
    )
    if not res.rowcount:
        db.rollback()
        return None
    db.commit()
    row = get_by_pid(db, bunjang_pid)
    if row is not None:
        db.refresh(row)
    return row


def mark_inventory_synced(db: Session, bunjang_pid: str, quantity: int) -> Optional[SyncedProduct]:
    return update_fields(
        db,
        bunjang_pid,
        bunjang_quantity=quantity,
        last_inventory_sync_at=now_utc(),
    )


def mark_sync_error(
    db: Session,
    bunjang_pid: str,
    err: BaseException,
    *,
    status: Optional[SyncStatus] = None,
) -> Optional[SyncedProduct]:
    """记录错误信息和重试次数；status 为 None 时保持原 sync_status。"""
    row = get_by_pid(db, bunjang_pid)
    if row is None:
        return None
    msg = str(err) or type(err).__name__
    stack = "".join(traceback.format_exception(type(err), err, err.__traceback__))
    extra = {"sync_status": status} if status is not None else {}
    return update_fields(
        db,
        bunjang_pid,
        **extra,
        sync_error_message=msg[:1000],
        sync_error_stack_sample=stack[:2000],
        sync_retry_count=(row.sync_retry_count or 0) + 1,
        last_sync_attempt_at=now_utc(),
    )


def delete_by_shopify_gid(db: Session, shopify_gid: str) -> int:
    """Shopify 商品被删除时级联删除映射。返回删除行数。"""
    res = db.execute(delete(SyncedProduct).where(SyncedProduct.shopify_gid == shopify_gid))
    db.commit()
    return int(res.rowcount or 0)
