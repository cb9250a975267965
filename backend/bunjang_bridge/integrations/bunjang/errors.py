"""
   Bunjang 集成层专用异常类型。
   HTTP/限流/服务端/载荷错误与业务层解耦；全部继承 ExternalServiceError，
   业务层按 error_code 分类（见 services/order_failure.py）。
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from bunjang_bridge.core.errors import ExternalServiceError


class BunjangError(ExternalServiceError):
    """Base for all Bunjang errors."""

    def __init__(
        self,
        message: str,
        *,
        original: Optional[BaseException] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message, service="bunjang", original=original, details=details)


class BunjangAuthError(BunjangError):
    """Token rejected (401/403) or credentials missing."""


class BunjangClientError(BunjangError):
    """Network/client-side errors after retries."""


class BunjangServerError(BunjangError):
    """Server-side (5xx) errors after retries."""


class BunjangRateLimitError(BunjangError):
    """429 Too Many Requests not resolved after retries."""


class BunjangPayloadError(BunjangError):
    """Unexpected/invalid response payload shape or content."""


class BunjangApiError(BunjangError):
    """4xx with a parsed error body: {"errorCode": ..., "reason": ...}."""

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        reason: Optional[str] = None,
        status_code: Optional[int] = None,
        original: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, original=original)
        self.error_code = error_code
        self.reason = reason
        self.status_code = status_code
