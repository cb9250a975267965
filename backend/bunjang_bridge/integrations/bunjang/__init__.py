"""
对外统一入口：从这里 import 需要的类，内部实现可自由演进。
"""

from .bunjang_api import BunjangAPI
from .http_client import BunjangHttpClient
from .schemas import (
    BunjangOrder, BunjangOrderCreated, BunjangOrderItem, BunjangOrderPage, BunjangProduct, PointBalance,
)
from .errors import (
    BunjangError, BunjangAuthError, BunjangClientError, BunjangServerError,
    BunjangRateLimitError, BunjangPayloadError, BunjangApiError,
)


__all__ = [
    "BunjangAPI", "BunjangHttpClient",
    "BunjangOrder", "BunjangOrderCreated", "BunjangOrderItem", "BunjangOrderPage", "BunjangProduct", "PointBalance",
    "BunjangError", "BunjangAuthError", "BunjangClientError", "BunjangServerError",
    "BunjangRateLimitError", "BunjangPayloadError", "BunjangApiError",
]
