from contextlib import asynccontextmanager

from fastapi import FastAPI
from bunjang_bridge.core.config import settings
from bunjang_bridge.core.logging import configure_logging
from bunjang_bridge.api.v1 import api_v1
from bunjang_bridge.db.session import dispose_engine

configure_logging()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    dispose_engine()


# 只有服务端调用方（Shopify webhook、运营脚本），不挂 CORS
app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.include_router(api_v1, prefix=settings.API_PREFIX)


# 根路径健康探活（Docker 健康检查）
@app.get("/")
def root():
    return {
        "app": settings.PROJECT_NAME,
        "env": settings.ENVIRONMENT,
        "ok": True,
    }
