from fastapi import APIRouter

from .routes_health import router as health_router
from .routes_ops import router as ops_router
from .webhooks_shopify import router as webhooks_router


api_v1 = APIRouter()
api_v1.include_router(health_router)
api_v1.include_router(webhooks_router)     # Shopify 回调，HMAC 校验
api_v1.include_router(ops_router)
