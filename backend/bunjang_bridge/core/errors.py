"""
   业务层通用异常。
   - ValidationError: 输入不合法（订单缺字段、日期范围超过 15 天），直接抛给调用方
   - ExternalServiceError: 外部服务（Shopify / Bunjang）调用失败，由业务层分类、打标签、记日志
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base for all application errors."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: List[Dict[str, Any]] = list(details or [])

    def __str__(self) -> str:
        return self.message


class ValidationError(AppError):
    """Malformed input; fatal for the current operation."""


class ExternalServiceError(AppError):
    """A remote gateway call failed."""

    def __init__(
        self,
        message: str,
        *,
        service: str = "external",
        original: Optional[BaseException] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message, details)
        self.service = service
        self.original = original
