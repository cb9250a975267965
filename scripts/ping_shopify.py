from bunjang_bridge.core.config import settings
from bunjang_bridge.integrations.shopify.shopify_client import ShopifyClient

if __name__ == "__main__":
    cli = ShopifyClient()
    data = cli.ping()
    print(data)
    # Bunjang 仓库 location 也确认一下
    print("warehouse location:", settings.bunjang_warehouse_gid)


# 运行
# export $(grep -v '^#' backend/.env | xargs)   # 若你用 .env
# PYTHONPATH=backend python scripts/ping_shopify.py



# 看到返回 shop.name / myshopifyDomain / plan.displayName 说明域名、版本、token 都 OK
