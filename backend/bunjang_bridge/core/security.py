from __future__ import annotations

import base64
import hashlib
import hmac
import time
import uuid
from typing import Optional

from jose import jwt

from bunjang_bridge.core.config import settings


ALGORITHM = "HS256"


# =============== Shopify Webhook HMAC ===============
def compute_hmac_base64(secret: str, raw_body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_shopify_hmac(provided_hmac_b64: str, raw_body: bytes, secret: Optional[str] = None) -> bool:
    secret = secret if secret is not None else settings.SHOPIFY_WEBHOOK_SECRET
    if not provided_hmac_b64 or not secret:
        return False
    expected = compute_hmac_base64(secret, raw_body)
    return hmac.compare_digest(provided_hmac_b64, expected)


'''
Bunjang Open API 鉴权 token
  - 每次请求生成一次，payload = accessKey + nonce + iat
  - 用 base64 解码后的 secretKey 做 HS256 签名
'''
def create_bunjang_token(access_key: str, secret_key_b64: str, *, now: Optional[int] = None) -> str:
    payload = {
        "accessKey": access_key,
        "nonce": str(uuid.uuid4()),
        "iat": int(now if now is not None else time.time()),
    }
    secret = base64.b64decode(secret_key_b64)
    return jwt.encode(payload, secret, algorithm=ALGORITHM)
