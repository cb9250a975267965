"""
Bunjang Open API 业务封装：
  - 解包 {"data": ...} 外壳，返回 schemas 里的类型化模型；
  - 商品不存在（404 / PRODUCT_NOT_FOUND）返回 None，其它错误原样抛出。
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from bunjang_bridge.integrations.bunjang.errors import BunjangApiError, BunjangPayloadError
from bunjang_bridge.integrations.bunjang.http_client import BunjangHttpClient
from bunjang_bridge.integrations.bunjang.schemas import (
    BunjangOrderCreated,
    BunjangOrderPage,
    BunjangProduct,
    PointBalance,
)
from bunjang_bridge.utils.clock import iso_utc


logger = logging.getLogger(__name__)

PRODUCT_DETAIL_PATH = "/api/v1/products/{pid}"
ORDER_CREATE_PATH = "/api/v2/orders"
POINT_BALANCE_PATH = "/api/v1/points/balance"
ORDERS_PATH = "/api/v1/orders"

_NOT_FOUND_CODES = {"PRODUCT_NOT_FOUND", "NOT_FOUND"}


def _unwrap(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class BunjangAPI:

    def __init__(self, http: Optional[BunjangHttpClient] = None) -> None:
        self._http = http or BunjangHttpClient()

    def get_bunjang_product_details(self, pid: str) -> Optional[BunjangProduct]:
        try:
            payload = self._http.get_json(PRODUCT_DETAIL_PATH.format(pid=pid))
        except BunjangApiError as e:
            if e.status_code == 404 or e.error_code in _NOT_FOUND_CODES:
                logger.info("bunjang.product.not_found pid=%s code=%s", pid, e.error_code)
                return None
            raise

        data = _unwrap(payload)
        if not data:
            return None
        try:
            product = BunjangProduct.model_validate(data)
        except PydanticValidationError as e:
            raise BunjangPayloadError(f"invalid product payload pid={pid}: {e}", original=e) from e
        if product.pid is None:
            product.pid = str(pid)
        return product

    def create_bunjang_order_v2(self, payload: Dict[str, Any]) -> BunjangOrderCreated:
        """payload: {"product": {"id": int, "price": int}, "deliveryPrice": int}"""
        data = _unwrap(self._http.post_json(ORDER_CREATE_PATH, json_body=payload))
        return BunjangOrderCreated.from_raw(data if isinstance(data, dict) else {})

    def get_bunjang_point_balance(self) -> PointBalance:
        data = _unwrap(self._http.get_json(POINT_BALANCE_PATH))
        return PointBalance.model_validate(data or {})

    def get_bunjang_orders(
        self,
        start: Union[datetime, str],
        end: Union[datetime, str],
        *,
        page: int = 0,
        size: int = 100,
    ) -> BunjangOrderPage:
        params = {
            "statusUpdateStartDate": iso_utc(start) if isinstance(start, datetime) else start,
            "statusUpdateEndDate": iso_utc(end) if isinstance(end, datetime) else end,
            "page": page,
            "size": size,
        }
        payload = self._http.get_json(ORDERS_PATH, params=params)
        try:
            return BunjangOrderPage.model_validate(payload or {})
        except PydanticValidationError as e:
            raise BunjangPayloadError(f"invalid orders page: {e}", original=e) from e
