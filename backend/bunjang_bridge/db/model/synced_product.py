from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, Enum as SAEnum, Index, Integer, String, Text, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from bunjang_bridge.db.base import Base


class SyncStatus(str, enum.Enum):
    SYNCED = "SYNCED"
    ERROR = "ERROR"
    PENDING = "PENDING"
    PARTIAL_ERROR = "PARTIAL_ERROR"
    SKIPPED_NO_CHANGE = "SKIPPED_NO_CHANGE"


class ShopifyListingStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DRAFT = "DRAFT"
    ARCHIVED = "ARCHIVED"


"""
  Bunjang 商品 <-> Shopify 商品 映射表（一条 Bunjang listing 一行）
  - bunjang_pid: 主键，永不复用
  - shopify_gid: 唯一，可为空（未关联前）
  - 其余为最近一次同步时 Bunjang 侧的快照 + 同步记账字段
"""
class SyncedProduct(Base):

    __tablename__ = "synced_products"

    bunjang_pid: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Shopify 关联
    shopify_gid:        Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)   # gid://shopify/Product/123
    shopify_product_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)                   # "123"
    shopify_handle:     Mapped[Optional[str]] = mapped_column(String(255), index=True)

    # Bunjang 原始信息快照
    bunjang_product_name:              Mapped[Optional[str]] = mapped_column(String(512))
    bunjang_category_id:               Mapped[Optional[str]] = mapped_column(String(64), index=True)
    bunjang_brand_id:                  Mapped[Optional[str]] = mapped_column(String(64), index=True)
    bunjang_seller_uid:                Mapped[Optional[str]] = mapped_column(String(64), index=True)
    bunjang_condition:                 Mapped[Optional[str]] = mapped_column(String(64))
    bunjang_original_price_krw:        Mapped[Optional[int]] = mapped_column(Integer)
    bunjang_original_shipping_fee_krw: Mapped[Optional[int]] = mapped_column(Integer)
    bunjang_quantity:                  Mapped[Optional[int]] = mapped_column(Integer)
    bunjang_options_json:              Mapped[Optional[str]] = mapped_column(Text)
    bunjang_images_json:               Mapped[Optional[str]] = mapped_column(Text)
    bunjang_keywords_json:             Mapped[Optional[str]] = mapped_column(Text)
    bunjang_created_at:                Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    bunjang_updated_at:                Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)

    # Shopify 侧信息
    shopify_product_type:     Mapped[Optional[str]] = mapped_column(String(255))
    shopify_listed_price_usd: Mapped[Optional[str]] = mapped_column(String(32))
    shopify_status: Mapped[Optional[ShopifyListingStatus]] = mapped_column(
        SAEnum(ShopifyListingStatus, name="shopify_listing_status"), nullable=True, index=True,
    )

    # 同步状态与记账
    last_sync_attempt_at:    Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    last_successful_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    last_inventory_sync_at:  Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    sync_status: Mapped[SyncStatus] = mapped_column(
        SAEnum(SyncStatus, name="sync_status"), nullable=False, default=SyncStatus.PENDING, index=True,
    )
    sync_error_message:      Mapped[Optional[str]] = mapped_column(String(1000))
    sync_error_stack_sample: Mapped[Optional[str]] = mapped_column(String(2000))
    sync_retry_count:        Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_filtered_out: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)   # 按策略排除同步
    notes:           Mapped[Optional[str]] = mapped_column(String(500))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_synced_products_status_attempt", "sync_status", "last_sync_attempt_at"),
    )

    @property
    def is_linked(self) -> bool:
        return bool(self.shopify_gid or self.shopify_product_id)
