"""Bunjang 下单失败的分类：remote errorCode -> 本地失败类型 -> 订单标签后缀。"""
from __future__ import annotations

import enum
from typing import Dict

from bunjang_bridge.integrations.bunjang.errors import BunjangApiError


class OrderFailureKind(str, enum.Enum):
    NOT_AVAILABLE = "NotAvailable"
    PRICE_CHANGED = "PriceChanged"
    INSUFFICIENT_POINTS = "InsufficientPoints"
    CREATE_FAIL = "CreateFail"
    UNKNOWN = "Exception"

    @property
    def tag_suffix(self) -> str:
        return self.value


_CODE_TO_KIND: Dict[str, OrderFailureKind] = {
    "PRODUCT_NOT_FOUND": OrderFailureKind.NOT_AVAILABLE,
    "PRODUCT_SOLD_OUT": OrderFailureKind.NOT_AVAILABLE,
    "PRODUCT_ON_HOLD": OrderFailureKind.NOT_AVAILABLE,
    "INVALID_PRODUCT_PRICE": OrderFailureKind.PRICE_CHANGED,
    "POINT_SHORTAGE": OrderFailureKind.INSUFFICIENT_POINTS,
}


def classify_bunjang_error(exc: BaseException) -> OrderFailureKind:
    """
    带 errorCode 的 BunjangApiError 按表映射，表外的 code 一律 CREATE_FAIL；
    没有 remote code 的异常（网络、5xx、本地 bug）是 UNKNOWN。
    """
    if isinstance(exc, BunjangApiError) and exc.error_code:
        return _CODE_TO_KIND.get(exc.error_code, OrderFailureKind.CREATE_FAIL)
    return OrderFailureKind.UNKNOWN


def describe_bunjang_error(exc: BaseException) -> str:
    if isinstance(exc, BunjangApiError) and exc.error_code:
        return f"{exc.error_code}: {exc.reason or exc.message}"
    return str(exc) or type(exc).__name__
