"""
Bunjang 单件库存 -> Shopify 库存。

Bunjang 商品只有 "在售 / 已售" 两种状态，所以只要映射存在且商品在售，
Shopify 在 Bunjang 仓库 location 上的 on-hand 必须正好是 1。
本模块所有写入都是把它重新钉到 1；零库存信号不会触发删除。
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from bunjang_bridge.core.config import settings
from bunjang_bridge.core.logging import job_prefix
from bunjang_bridge.db.session import session_scope
from bunjang_bridge.integrations.bunjang import BunjangAPI
from bunjang_bridge.integrations.shopify.payload_utils import to_gid
from bunjang_bridge.integrations.shopify.shopify_client import ShopifyClient
from bunjang_bridge.repository import synced_product_repo as repo


logger = logging.getLogger(__name__)

BUNJANG_UNIT_QUANTITY = 1


@dataclass
class BatchSyncResult:
    success: int = 0
    failed: int = 0
    results: Dict[str, bool] = field(default_factory=dict)


@dataclass
class FullSyncResult:
    total: int = 0
    synced: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)


class InventoryService:

    def __init__(
        self,
        *,
        shopify: Optional[ShopifyClient] = None,
        bunjang: Optional[BunjangAPI] = None,
        session_factory: Optional[sessionmaker[Session]] = None,
        sleep: Callable[[float], None] = time.sleep,
        location_gid: Optional[str] = None,
    ) -> None:
        self.shopify = shopify or ShopifyClient()
        self.bunjang = bunjang or BunjangAPI()
        self.session_factory = session_factory
        self.sleep = sleep
        self.location_gid = location_gid or settings.bunjang_warehouse_gid


    # ---------------- 核心：钉到 1 ----------------
    def sync_bunjang_inventory_to_shopify(self, bunjang_pid: str, job_id: Optional[str] = None) -> bool:
        """
        把映射商品在 Bunjang 仓库的 on-hand 设为 1。
          - 映射不存在 / 未关联：返回 False，不做任何写入
          - Shopify 读写异常：直接抛给调用方（重试策略由调用方决定）
        """
        jp = job_prefix(job_id)
        pid = str(bunjang_pid)

        with session_scope(self.session_factory) as db:
            mapping = repo.get_by_pid(db, pid)
            product_gid = None
            if mapping is not None and mapping.is_linked:
                product_gid = mapping.shopify_gid or to_gid("Product", mapping.shopify_product_id)

        if not product_gid:
            logger.warning("%s inventory.sync mapping not found or unlinked pid=%s", jp, pid)
            return False

        variant = self.shopify.get_product_inventory(product_gid)
        if variant is None or not variant.inventory_item_id:
            logger.warning("%s inventory.sync shopify variant/inventory item missing pid=%s product=%s",
                           jp, pid, product_gid)
            return False

        item_id = variant.inventory_item_id
        for lvl in variant.levels:
            logger.info("%s inventory.sync current level pid=%s location=%s(%s) quantity=%s",
                        jp, pid, lvl.location_name, lvl.location_id, lvl.quantity)

        if not variant.tracked:
            logger.info("%s inventory.sync enabling tracking pid=%s item=%s", jp, pid, item_id)
            self.shopify.enable_inventory_tracking(item_id)
            self.sleep(settings.INVENTORY_TRACKING_SETTLE_SEC)

        self.shopify.activate_inventory_at_location(item_id, self.location_gid)
        self.sleep(settings.INVENTORY_ACTIVATE_SETTLE_SEC)

        self.shopify.set_on_hand_quantities(item_id, self.location_gid, BUNJANG_UNIT_QUANTITY, reason="correction")

        self._verify_and_correct(pid, item_id, jp)

        with session_scope(self.session_factory) as db:
            repo.mark_inventory_synced(db, pid, BUNJANG_UNIT_QUANTITY)

        logger.info("%s inventory.sync ok pid=%s item=%s location=%s quantity=%s",
                    jp, pid, item_id, self.location_gid, BUNJANG_UNIT_QUANTITY)
        return True


    def _verify_and_correct(self, pid: str, item_id: str, jp: str) -> None:
        """回读一次；仓库数量不是 1 就直接改一次，只纠正一次。"""
        self.sleep(settings.INVENTORY_VERIFY_SETTLE_SEC)
        try:
            levels = self.shopify.get_inventory_levels(item_id)
        except Exception as e:
            logger.warning("%s inventory.verify read failed pid=%s err=%s", jp, pid, e)
            return

        level = next((lvl for lvl in levels if lvl.location_id == self.location_gid), None)
        observed = level.quantity if level is not None else None
        if observed == BUNJANG_UNIT_QUANTITY:
            return

        logger.error("%s inventory.verify mismatch pid=%s item=%s expected=%s observed=%s; correcting once",
                     jp, pid, item_id, BUNJANG_UNIT_QUANTITY, observed)
        try:
            self.shopify.update_inventory_level(item_id, self.location_gid, BUNJANG_UNIT_QUANTITY)
        except Exception as e:
            logger.error("%s inventory.verify correction failed pid=%s err=%s", jp, pid, e)


    # ---------------- 派生操作 ----------------
    def batch_sync_inventory(self, bunjang_pids: Iterable[str], job_id: Optional[str] = None) -> BatchSyncResult:
        jp = job_prefix(job_id)
        result = BatchSyncResult()
        for pid in bunjang_pids:
            pid = str(pid)
            try:
                ok = self.sync_bunjang_inventory_to_shopify(pid, job_id)
            except Exception as e:
                logger.error("%s inventory.batch pid=%s failed err=%s", jp, pid, e)
                ok = False
            result.results[pid] = ok
            if ok:
                result.success += 1
            else:
                result.failed += 1
        logger.info("%s inventory.batch done success=%s failed=%s", jp, result.success, result.failed)
        return result


    def check_and_sync_bunjang_inventory(self, bunjang_pid: str, job_id: Optional[str] = None) -> int:
        """Bunjang 商品能查到 -> 钉到 1 并返回 1；查不到返回 -1。"""
        jp = job_prefix(job_id)
        product = self.bunjang.get_bunjang_product_details(str(bunjang_pid))
        if product is None:
            logger.warning("%s inventory.check bunjang product unavailable pid=%s", jp, bunjang_pid)
            return -1
        self.sync_bunjang_inventory_to_shopify(str(bunjang_pid), job_id)
        return BUNJANG_UNIT_QUANTITY


    def perform_full_inventory_sync(self, job_id: Optional[str] = None) -> FullSyncResult:
        """遍历 SYNCED 映射逐个钉到 1；每处理 2 个暂停一次。"""
        jp = job_prefix(job_id)
        with session_scope(self.session_factory) as db:
            pids = [row.bunjang_pid for row in repo.list_synced(db, limit=settings.FULL_INVENTORY_SYNC_LIMIT)]

        result = FullSyncResult(total=len(pids))
        logger.info("%s inventory.full_sync start total=%s", jp, result.total)

        for processed, pid in enumerate(pids, start=1):
            try:
                if self.sync_bunjang_inventory_to_shopify(pid, job_id):
                    result.synced += 1
                else:
                    result.failed += 1
            except Exception as e:
                result.failed += 1
                result.errors.append({"pid": pid, "error": str(e)})
                logger.error("%s inventory.full_sync pid=%s failed err=%s", jp, pid, e)
                with session_scope(self.session_factory) as db:
                    repo.mark_sync_error(db, pid, e)

            if processed % 2 == 0:
                self.sleep(settings.FULL_INVENTORY_SYNC_PACING_SEC)

        logger.info("%s inventory.full_sync done total=%s synced=%s failed=%s",
                    jp, result.total, result.synced, result.failed)
        return result


    # ---------------- 零库存 / 下单后 ----------------
    def delete_product_if_out_of_stock(self, bunjang_pid: str, job_id: Optional[str] = None) -> bool:
        """零库存不删除映射和 Shopify 商品，只重新钉到 1。始终返回 False（未删除）。"""
        jp = job_prefix(job_id)
        logger.info("%s inventory.out_of_stock pid=%s: re-asserting quantity 1 instead of deleting", jp, bunjang_pid)
        try:
            self.sync_bunjang_inventory_to_shopify(str(bunjang_pid), job_id)
        except Exception as e:
            logger.error("%s inventory.out_of_stock resync failed pid=%s err=%s", jp, bunjang_pid, e)
        return False


    def process_order_inventory_update(
        self,
        bunjang_pid: str,
        ordered_quantity: int = 1,
        job_id: Optional[str] = None,
    ) -> bool:
        """Shopify 下单后 Shopify 会扣减库存；Bunjang 侧仍是单件，重新钉到 1。"""
        jp = job_prefix(job_id)
        logger.info("%s inventory.order_update pid=%s ordered=%s", jp, bunjang_pid, ordered_quantity)
        return self.sync_bunjang_inventory_to_shopify(str(bunjang_pid), job_id)


    def check_low_stock_products(self) -> List[str]:
        # 单件商品没有"低库存"概念
        return []
