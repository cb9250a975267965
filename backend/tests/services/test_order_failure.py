import pytest

from bunjang_bridge.integrations.bunjang import BunjangApiError, BunjangClientError
from bunjang_bridge.services.order_failure import OrderFailureKind, classify_bunjang_error, describe_bunjang_error


@pytest.mark.parametrize("code, kind", [
    ("PRODUCT_NOT_FOUND", OrderFailureKind.NOT_AVAILABLE),
    ("PRODUCT_SOLD_OUT", OrderFailureKind.NOT_AVAILABLE),
    ("PRODUCT_ON_HOLD", OrderFailureKind.NOT_AVAILABLE),
    ("INVALID_PRODUCT_PRICE", OrderFailureKind.PRICE_CHANGED),
    ("POINT_SHORTAGE", OrderFailureKind.INSUFFICIENT_POINTS),
    ("ORDER_LIMIT_EXCEEDED", OrderFailureKind.CREATE_FAIL),
])
def test_classify_known_codes(code, kind):
    err = BunjangApiError(f"400 {code}", error_code=code, reason="r", status_code=400)
    assert classify_bunjang_error(err) is kind


def test_classify_without_remote_code():
    assert classify_bunjang_error(BunjangClientError("timeout")) is OrderFailureKind.UNKNOWN
    assert classify_bunjang_error(BunjangApiError("400 client error")) is OrderFailureKind.UNKNOWN
    assert classify_bunjang_error(ValueError("bug")) is OrderFailureKind.UNKNOWN
    assert OrderFailureKind.UNKNOWN.tag_suffix == "Exception"


def test_describe():
    err = BunjangApiError("400", error_code="POINT_SHORTAGE", reason="not enough points", status_code=400)
    assert describe_bunjang_error(err) == "POINT_SHORTAGE: not enough points"
    assert describe_bunjang_error(KeyError()) == "KeyError"
