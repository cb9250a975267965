"""Bunjang Open API 响应模型：业务层只消费这些模型，不直接读原始 JSON。"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _BunjangModel(BaseModel):
    # 数字 id 统一转成字符串
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)


class BunjangProduct(_BunjangModel):
    pid: Optional[str] = Field(default=None, alias="pid")
    name: Optional[str] = None
    price: int = 0                                   # KRW
    quantity: int = 0
    shipping_fee: int = Field(default=0, alias="shippingFee")
    status: Optional[str] = None
    sale_status: Optional[str] = Field(default=None, alias="saleStatus")
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    brand_id: Optional[str] = Field(default=None, alias="brandId")
    seller_uid: Optional[str] = Field(default=None, alias="uid")


class BunjangOrderCreated(_BunjangModel):
    id: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Optional[dict]) -> "BunjangOrderCreated":
        raw = raw or {}
        order_id = raw.get("id")
        return cls(id=str(order_id) if order_id not in (None, "") else None)


class PointBalance(_BunjangModel):
    balance: int = 0


class BunjangOrderItemProduct(_BunjangModel):
    id: str
    name: Optional[str] = None
    price: Optional[int] = None


class BunjangOrderItem(_BunjangModel):
    id: Optional[str] = None
    status: str
    product: BunjangOrderItemProduct
    purchase_confirmed_at: Optional[str] = Field(default=None, alias="purchaseConfirmedAt")


class BunjangOrder(_BunjangModel):
    id: str
    order_items: List[BunjangOrderItem] = Field(default_factory=list, alias="orderItems")


class BunjangOrderPage(_BunjangModel):
    # 订单逐条解析（BunjangOrder.model_validate），一条坏数据不影响同页其它订单
    data: List[Dict[str, Any]] = Field(default_factory=list)
    total_pages: int = Field(default=0, alias="totalPages")
    page: int = 0
