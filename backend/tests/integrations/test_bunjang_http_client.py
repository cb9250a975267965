"""BunjangHttpClient / BunjangAPI：用假 session 回放响应，不访问外网。"""
from __future__ import annotations

import base64
import json
from datetime import datetime, timezone
from typing import Any, List, Optional

import pytest
import requests
from jose import jwt

from bunjang_bridge.integrations.bunjang import (
    BunjangAPI, BunjangApiError, BunjangAuthError, BunjangClientError, BunjangOrder,
    BunjangHttpClient, BunjangRateLimitError,
)


SECRET_RAW = b"bunjang-test-secret-key-0123456789"
SECRET_B64 = base64.b64encode(SECRET_RAW).decode()


def _resp(status: int, body: Any = None, text: Optional[str] = None) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    if body is not None:
        r._content = json.dumps(body).encode("utf-8")
        r.headers["Content-Type"] = "application/json"
    else:
        r._content = (text or "").encode("utf-8")
    return r


class _ReplaySession:
    """按顺序返回预设响应；元素是 Exception 时抛出。"""

    def __init__(self, responses: List[Any]) -> None:
        self.responses = list(responses)
        self.requests: List[dict] = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append({"method": method, "url": url, "headers": headers, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        pass


def _client(responses: List[Any], sleeps: List[float], **overrides) -> BunjangHttpClient:
    kwargs = dict(
        base_url="https://bunjang.test",
        access_key="access-1",
        secret_key=SECRET_B64,
        rate_limit_per_min=600,
        session=_ReplaySession(responses),
        sleep=sleeps.append,
    )
    kwargs.update(overrides)
    return BunjangHttpClient(**kwargs)


# 方法 1：每个请求都带现签的 JWT
def test_get_json_signs_every_request(sleeps):
    client = _client([_resp(200, {"data": {"ok": 1}}), _resp(200, {"data": {"ok": 2}})], sleeps)

    assert client.get_json("/api/v1/points/balance") == {"data": {"ok": 1}}
    client.get_json("/api/v1/points/balance")

    sent = client._session.requests
    assert sent[0]["url"] == "https://bunjang.test/api/v1/points/balance"
    tokens = [r["headers"]["Authorization"].split(" ", 1)[1] for r in sent]
    claims = [jwt.decode(t, SECRET_RAW, algorithms=["HS256"]) for t in tokens]
    assert all(c["accessKey"] == "access-1" for c in claims)
    assert claims[0]["nonce"] != claims[1]["nonce"]


# 方法 2：401 重新签名一次；连续 401 抛 BunjangAuthError
def test_401_resigns_once(sleeps):
    client = _client([_resp(401, text="expired"), _resp(200, {"data": {}})], sleeps)
    assert client.get_json("/x") == {"data": {}}
    assert len(client._session.requests) == 2

    client = _client([_resp(401, text="no"), _resp(401, text="no")], sleeps)
    with pytest.raises(BunjangAuthError):
        client.get_json("/x")


def test_missing_credentials_fail_before_request(sleeps, monkeypatch):
    from bunjang_bridge.core.config import settings

    monkeypatch.setattr(settings, "BUNJANG_ACCESS_KEY", None)
    client = _client([], sleeps, access_key=None)
    with pytest.raises(BunjangAuthError):
        client.get_json("/x")
    assert client._session.requests == []


# 方法 3：429 / 5xx 退避重试；重试用尽抛对应异常
def test_retry_on_429_and_5xx(sleeps):
    client = _client([_resp(503, text="busy"), _resp(200, {"data": {"id": 1}})], sleeps)
    assert client.post_json("/api/v2/orders", json_body={"a": 1}) == {"data": {"id": 1}}
    assert client._session.requests[0]["json"] == {"a": 1}

    client = _client([_resp(429, text="slow down")] * 3, sleeps, max_attempts=3)
    with pytest.raises(BunjangRateLimitError):
        client.get_json("/x")
    assert len(client._session.requests) == 3


def test_network_errors_become_client_error(sleeps):
    client = _client([requests.ConnectionError("down")] * 2, sleeps, max_attempts=2)
    with pytest.raises(BunjangClientError):
        client.get_json("/x")


# 方法 4：4xx 解析 errorCode / reason（可能包在 errors 数组里）
@pytest.mark.parametrize("body", [
    {"errorCode": "POINT_SHORTAGE", "reason": "not enough points"},
    {"errors": [{"errorCode": "POINT_SHORTAGE", "reason": "not enough points"}]},
])
def test_4xx_parses_error_code(sleeps, body):
    client = _client([_resp(400, body)], sleeps)
    with pytest.raises(BunjangApiError) as exc:
        client.post_json("/api/v2/orders", json_body={})
    assert exc.value.error_code == "POINT_SHORTAGE"
    assert exc.value.reason == "not enough points"
    assert exc.value.status_code == 400
    assert len(client._session.requests) == 1


def test_empty_body_is_empty_dict(sleeps):
    client = _client([_resp(204)], sleeps)
    assert client.get_json("/x") == {}


# ---------------- BunjangAPI ----------------

def test_product_details_and_not_found(sleeps):
    client = _client([
        _resp(200, {"data": {"name": "Bag", "price": 42000, "quantity": 1, "shippingFee": 3000, "uid": 77}}),
        _resp(404, {"errorCode": "NOT_FOUND", "reason": "gone"}),
        _resp(400, {"errorCode": "PRODUCT_NOT_FOUND", "reason": "gone"}),
    ], sleeps)
    api = BunjangAPI(http=client)

    product = api.get_bunjang_product_details("111")
    assert product.pid == "111"
    assert (product.price, product.quantity, product.shipping_fee, product.seller_uid) == (42000, 1, 3000, "77")

    assert api.get_bunjang_product_details("222") is None
    assert api.get_bunjang_product_details("333") is None


def test_create_order_and_balance(sleeps):
    client = _client([_resp(200, {"data": {"id": 5001}}), _resp(200, {"data": {"balance": 120000}})], sleeps)
    api = BunjangAPI(http=client)

    created = api.create_bunjang_order_v2({"product": {"id": 111, "price": 1000}, "deliveryPrice": 0})
    assert created.id == "5001"
    assert api.get_bunjang_point_balance().balance == 120000


def test_get_orders_passes_window(sleeps):
    page = {
        "data": [{"id": 5001, "orderItems": [{"id": 1, "status": "PAYMENT_RECEIVED", "product": {"id": 111}}]}],
        "totalPages": 3,
        "page": 0,
    }
    client = _client([_resp(200, page)], sleeps)
    api = BunjangAPI(http=client)

    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    end = datetime(2026, 3, 2, 12, 30, tzinfo=timezone.utc)
    resp = api.get_bunjang_orders(start, end, page=0, size=100)

    params = client._session.requests[0]["params"]
    assert params["statusUpdateStartDate"] == "2026-03-01T00:00:00.000Z"
    assert params["statusUpdateEndDate"] == "2026-03-02T12:30:00.000Z"
    assert params["size"] == 100
    assert resp.total_pages == 3
    order = BunjangOrder.model_validate(resp.data[0])
    assert order.id == "5001"
    assert order.order_items[0].product.id == "111"
