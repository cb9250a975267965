# 环境变量和配置
# pydantic‑settings 读取 .env = core/config.py

from typing import Optional
from pydantic import SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 本机直接跑 uvicorn / celery 时（不走 Docker），才会用到 model_config.env_file=".env"：
# 此时它会读取 backend/.env

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # ========= project config =========
    PROJECT_NAME: str = "Bunjang Bridge"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"


    # ========= Database =========
    # 容器内默认连 docker 网络里的 "db" 服务；本地测试可直接换成 sqlite
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://bb_user:bb_pass@db:5432/bunjang_bridge",
        alias="DATABASE_URL",
    )


    # ========= celery config =========
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_TIMEZONE: str = "Asia/Seoul"
    SYNC_TASKS_INLINE: bool = Field(default=False, alias="SYNC_TASKS_INLINE")   # True = 任务在当前进程同步执行（调试用）


    # ========= Shopify API Config =========
    SHOPIFY_SHOP: Optional[str] = Field(None, alias="SHOPIFY_SHOP")   # xxx.myshopify.com，必须配置
    SHOPIFY_ADMIN_TOKEN: Optional[SecretStr] = Field(None, alias="SHOPIFY_ADMIN_TOKEN")   # 必须在运行时填上真实值
    SHOPIFY_API_VERSION: str = Field("2025-04", alias="SHOPIFY_API_VERSION")
    SHOPIFY_WEBHOOK_SECRET: Optional[str] = Field(None, alias="SHOPIFY_WEBHOOK_SECRET")

    # 网络/HTTP 层 配置
    SHOPIFY_HTTP_TIMEOUT: int = Field(30, alias="SHOPIFY_HTTP_TIMEOUT")
    SHOPIFY_HTTP_RETRIES: int = Field(3, alias="SHOPIFY_HTTP_RETRIES")
    SHOPIFY_HTTP_BACKOFF_MS: int = Field(200, alias="SHOPIFY_HTTP_BACKOFF_MS")


    # ========= Bunjang Base Config =========
    BUNJANG_BASE_URL: str = Field("https://openapi.bunjang.co.kr", alias="BUNJANG_BASE_URL")
    BUNJANG_ACCESS_KEY: Optional[str] = Field(None, alias="BUNJANG_ACCESS_KEY")
    BUNJANG_SECRET_KEY: Optional[SecretStr] = Field(None, alias="BUNJANG_SECRET_KEY")   # base64 编码的签名密钥
    BUNJANG_RATE_LIMIT_PER_MIN: int = Field(60, ge=1, le=600, alias="BUNJANG_RATE_LIMIT_PER_MIN")
    BUNJANG_CONNECT_TIMEOUT: int = Field(10, ge=1, alias="BUNJANG_CONNECT_TIMEOUT")
    BUNJANG_READ_TIMEOUT: int = Field(30, ge=1, alias="BUNJANG_READ_TIMEOUT")

    # ========= Bunjang 全局限流配置 =========
    BUNJANG_GLOBAL_RL_ENABLED: bool = False
    BUNJANG_GLOBAL_RATE_LIMIT_REDIS_URL: str = "redis://redis:6379/0"
    BUNJANG_GLOBAL_RL_MAX_RPM: int = 60
    BUNJANG_GLOBAL_RL_BURST: int = 5
    BUNJANG_GLOBAL_RL_KEY_PREFIX: str = "bunjang:rl"

    # ========= Bunjang 订单业务配置 =========
    BUNJANG_ORDER_IDENTIFIER_PREFIX: str = Field("BunjangOrder-", alias="BUNJANG_ORDER_IDENTIFIER_PREFIX")
    BUNJANG_LOW_BALANCE_THRESHOLD: int = Field(1_000_000, alias="BUNJANG_LOW_BALANCE_THRESHOLD")   # KRW
    BUNJANG_HALT_ON_POINT_SHORTAGE: bool = Field(False, alias="BUNJANG_HALT_ON_POINT_SHORTAGE")
    BUNJANG_ORDERS_PAGE_SIZE: int = Field(100, ge=1, le=100, alias="BUNJANG_ORDERS_PAGE_SIZE")     # API 上限 100
    BUNJANG_ORDER_MAX_RANGE_DAYS: int = Field(15, alias="BUNJANG_ORDER_MAX_RANGE_DAYS")            # API 硬限制 15 天
    BUNJANG_ENABLE_FREQUENT_SYNC: bool = Field(False, alias="BUNJANG_ENABLE_FREQUENT_SYNC")        # 每 30 分钟同步最近 1 小时


    # ========= 库存（Bunjang 单件库存）=========
    BUNJANG_WAREHOUSE_LOCATION_ID: str = Field("82604261625", alias="BUNJANG_WAREHOUSE_LOCATION_ID")
    INVENTORY_TRACKING_SETTLE_SEC: float = 1.0     # 开启 tracked 后等待生效
    INVENTORY_ACTIVATE_SETTLE_SEC: float = 1.5     # 激活 location 后等待生效
    INVENTORY_VERIFY_SETTLE_SEC: float = 1.0       # 设置数量后再读校验前等待
    FULL_INVENTORY_SYNC_LIMIT: int = 1000          # 全量同步一次最多处理条数
    FULL_INVENTORY_SYNC_PACING_SEC: float = 1.0    # 每处理 2 个暂停一次


    # ========= 订单状态同步调度 =========
    ORDER_SYNC_SCHEDULER_ENABLED: bool = Field(True, alias="ORDER_SYNC_SCHEDULER_ENABLED")
    ORDER_SYNC_DEBOUNCE_SEC: int = Field(60, ge=0, alias="ORDER_SYNC_DEBOUNCE_SEC")


    @property
    def bunjang_warehouse_gid(self) -> str:
        return f"gid://shopify/Location/{self.BUNJANG_WAREHOUSE_LOCATION_ID}"


settings = Settings()  # 只从环境读取（含 .env）
