"""
低层 HTTP 客户端：鉴权/限流/重试
  - 每个请求现签一个 JWT（accessKey + nonce + iat），无需缓存 token；
  - Redis 令牌桶全局限流，不可用时退回进程内节流（X req/min）；
  - 429/5xx/网络异常指数退避重试；其它 4xx 解析 {"errorCode","reason"} 抛 BunjangApiError；
  - 提供 get_json/post_json 两个入口，不关心业务字段结构。
"""

from __future__ import annotations
import logging, random, time, requests
from typing import Any, Callable, Dict, Optional
from urllib.parse import urljoin

from bunjang_bridge.core.config import settings
from bunjang_bridge.core.security import create_bunjang_token
from bunjang_bridge.integrations.bunjang.errors import (
    BunjangApiError, BunjangAuthError, BunjangClientError, BunjangPayloadError,
    BunjangRateLimitError, BunjangServerError,
)
from bunjang_bridge.infrastructure.ratelimit import RedisTokenBucketLimiter

logger = logging.getLogger(__name__)


def _secret_value(value: Any) -> Optional[str]:
    if hasattr(value, "get_secret_value"):
        return value.get_secret_value()
    return value


class BunjangHttpClient:
    """Bunjang Open API 的低层 HTTP 客户端：负责鉴权、限流与重试。"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        connect_timeout: Optional[int] = None,
        read_timeout: Optional[int] = None,
        rate_limit_per_min: Optional[int] = None,
        session: Optional[requests.Session] = None,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
        global_limiter: Optional[RedisTokenBucketLimiter] = None,
    ) -> None:
        """允许覆盖基础配置，便于测试或多账号场景。"""
        self.base_url = (base_url or settings.BUNJANG_BASE_URL).rstrip("/") + "/"
        self.access_key = access_key or settings.BUNJANG_ACCESS_KEY
        self.secret_key = secret_key or _secret_value(settings.BUNJANG_SECRET_KEY)
        self.connect_timeout = connect_timeout or settings.BUNJANG_CONNECT_TIMEOUT
        self.read_timeout = read_timeout or settings.BUNJANG_READ_TIMEOUT
        self.rate_limit_per_min = rate_limit_per_min or settings.BUNJANG_RATE_LIMIT_PER_MIN
        self.max_attempts = max(1, int(max_attempts))

        self._session = session or requests.Session()
        self._sleep = sleep
        self._last_request_ts: float = 0.0
        # 全局限流：同一账号的多个 worker 共用一个 Redis 令牌桶
        self._global_limiter = global_limiter or RedisTokenBucketLimiter.from_settings(
            vendor="bunjang", account=self.access_key
        )


    # ---------- Public ----------
    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        resp = self._request("GET", path, params=params, **kwargs)
        return self._as_json(resp)

    def post_json(self, path: str, json_body: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        resp = self._request("POST", path, json=json_body, **kwargs)
        return self._as_json(resp)

    def close(self) -> None:
        self._session.close()


    # ---------- Internals ----------
    def _as_json(self, resp: requests.Response) -> Any:
        """解析响应 JSON；失败截取文本抛 BunjangPayloadError。"""
        if resp.status_code == 204 or not (resp.content or b"").strip():
            return {}
        try:
            return resp.json()
        except ValueError as e:
            text = (resp.text or "")[:500]
            raise BunjangPayloadError(f"non-JSON response (status={resp.status_code}): {text}", original=e) from e


    def _auth_headers(self) -> Dict[str, str]:
        if not self.access_key or not self.secret_key:
            raise BunjangAuthError("BUNJANG_ACCESS_KEY / BUNJANG_SECRET_KEY not configured")
        token = create_bunjang_token(self.access_key, self.secret_key)
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }


    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """执行一次底层 HTTP 调用：签名、限流、重试与状态码处理。"""
        url = urljoin(self.base_url, path.lstrip("/"))
        extra_headers = kwargs.pop("headers", {}) or {}
        timeout = kwargs.pop("timeout", (self.connect_timeout, self.read_timeout))

        already_resigned = False
        attempt = 0
        while attempt < self.max_attempts:
            attempt += 1
            headers = {**self._auth_headers(), **extra_headers}
            self._respect_rate_limit()

            try:
                resp = self._session.request(method, url, headers=headers, timeout=timeout, **kwargs)
            except requests.RequestException as e:
                logger.warning("bunjang.http.request_exception %s %s attempt=%s/%s err=%s",
                               method, path, attempt, self.max_attempts, type(e).__name__)
                if attempt == self.max_attempts:
                    raise BunjangClientError(f"request error: {e}", original=e) from e
                self._sleep_backoff(attempt)
                continue

            self._last_request_ts = time.monotonic()
            logger.debug("bunjang.http %s %s -> %s", method, path, resp.status_code)

            # 401：nonce / iat 偶发被拒，重新签名再试一次
            if resp.status_code == 401:
                if not already_resigned:
                    logger.info("bunjang.http.401 re-signing token once path=%s", path)
                    already_resigned = True
                    attempt -= 1
                    continue
                raise BunjangAuthError(f"401 unauthorized: {(resp.text or '')[:300]}")

            if resp.status_code == 429:
                if attempt == self.max_attempts:
                    raise BunjangRateLimitError(f"429 after retries: {(resp.text or '')[:300]}")
                self._sleep_backoff(attempt)
                continue

            if resp.status_code >= 500:
                if attempt == self.max_attempts:
                    raise BunjangServerError(f"{resp.status_code} after retries: {(resp.text or '')[:300]}")
                self._sleep_backoff(attempt)
                continue

            if resp.status_code >= 400:
                raise self._api_error(resp)

            return resp

        raise BunjangClientError("unreachable retry loop")


    def _api_error(self, resp: requests.Response) -> BunjangApiError:
        """4xx 错误体：{"errorCode": "...", "reason": "..."}，可能包在 errors 数组里。"""
        code = reason = None
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            errors = body.get("errors")
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                body = errors[0]
            code = body.get("errorCode") or body.get("code")
            reason = body.get("reason") or body.get("message")
        snippet = (resp.text or "")[:300]
        message = f"{resp.status_code} {code}: {reason}" if code else f"{resp.status_code} client error: {snippet}"
        return BunjangApiError(message, error_code=code, reason=reason, status_code=resp.status_code)


    # ---------- Helpers ----------
    def _respect_rate_limit(self) -> None:
        """优先使用 Redis 令牌桶；Redis 出错时退回进程内节流。"""
        limiter = self._global_limiter
        if limiter is not None:
            try:
                for _ in range(20):
                    allowed, wait_ms = limiter.acquire_once()
                    if allowed:
                        return
                    self._sleep(max(0.001, (wait_ms or 1000) / 1000.0))
                # 20 次仍未拿到：交给上层重试节奏
                self._sleep(1.0)
                return
            except Exception as e:
                logger.warning("Global rate-limit disabled due to Redis error: %s; falling back to process-local.", e)
                self._global_limiter = None

        if not self.rate_limit_per_min or self.rate_limit_per_min <= 0:
            return
        interval = 60.0 / float(self.rate_limit_per_min)
        delta = time.monotonic() - self._last_request_ts
        if delta < interval:
            self._sleep(interval - delta)


    # 指数退避：上限 60 秒，加上 0~25% 抖动。例：2s, 4s, 8s ...
    def _sleep_backoff(self, attempt: int) -> None:
        base = min(2 ** attempt, 60)
        jitter = random.uniform(0, 0.25 * base)
        self._sleep(base + jitter)
