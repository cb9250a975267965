# 聚合导入所有模型，供 Alembic 发现

from .synced_product import SyncedProduct, SyncStatus, ShopifyListingStatus

__all__ = [
    "SyncedProduct", "SyncStatus", "ShopifyListingStatus",
]
