import base64

from jose import jwt

from bunjang_bridge.core.security import compute_hmac_base64, create_bunjang_token, verify_shopify_hmac
from bunjang_bridge.utils.clock import iso_utc, parse_iso


def test_shopify_hmac_roundtrip():
    body = b'{"id": 1}'
    digest = compute_hmac_base64("s3cret", body)

    assert verify_shopify_hmac(digest, body, secret="s3cret") is True
    assert verify_shopify_hmac(digest, body + b" ", secret="s3cret") is False
    assert verify_shopify_hmac("", body, secret="s3cret") is False
    assert verify_shopify_hmac(digest, body, secret="") is False


def test_bunjang_token_claims():
    secret = b"0123456789abcdef0123456789abcdef"
    token = create_bunjang_token("access-1", base64.b64encode(secret).decode(), now=1_700_000_000)

    claims = jwt.decode(token, secret, algorithms=["HS256"])
    assert claims["accessKey"] == "access-1"
    assert claims["iat"] == 1_700_000_000
    assert claims["nonce"]


def test_iso_helpers():
    value = parse_iso("2026-03-01T09:30:00Z")
    assert iso_utc(value) == "2026-03-01T09:30:00.000Z"
    assert iso_utc(parse_iso("2026-03-01T18:30:00+09:00")) == "2026-03-01T09:30:00.000Z"
