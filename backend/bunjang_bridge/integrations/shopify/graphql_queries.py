import json


# 转义 tag 供 Shopify 搜索字符串使用，统一包裹双引号
def escape_tag_for_query(tag: str) -> str:
    value = json.dumps(tag or "")[1:-1]
    return f'"{value}"'


# ---------------- 商品 ----------------

PRODUCT_TAGS = """
query ProductTags($id: ID!) {
  product(id: $id) {
    id
    handle
    title
    tags
  }
}
""".strip()


# 单件商品只看第一个变体
PRODUCT_VARIANT_INVENTORY = """
query ProductVariantInventory($id: ID!) {
  product(id: $id) {
    id
    handle
    variants(first: 1) {
      edges {
        node {
          id
          sku
          inventoryItem {
            id
            tracked
            inventoryLevels(first: 20) {
              edges {
                node {
                  id
                  location { id name }
                  quantities(names: ["available", "on_hand"]) { name quantity }
                }
              }
            }
          }
        }
      }
    }
  }
}
""".strip()


INVENTORY_ITEM_LEVELS = """
query InventoryItemLevels($id: ID!) {
  inventoryItem(id: $id) {
    id
    tracked
    inventoryLevels(first: 20) {
      edges {
        node {
          id
          location { id name }
          quantities(names: ["available", "on_hand"]) { name quantity }
        }
      }
    }
  }
}
""".strip()


# ---------------- 库存 mutation ----------------

INVENTORY_ITEM_ENABLE_TRACKING = """
mutation EnableTracking($id: ID!) {
  inventoryItemUpdate(id: $id, input: { tracked: true }) {
    inventoryItem { id tracked }
    userErrors { field message }
  }
}
""".strip()


INVENTORY_ACTIVATE = """
mutation ActivateInventory($inventoryItemId: ID!, $locationId: ID!) {
  inventoryActivate(inventoryItemId: $inventoryItemId, locationId: $locationId) {
    inventoryLevel { id location { id } }
    userErrors { field message }
  }
}
""".strip()


INVENTORY_SET_ON_HAND = """
mutation SetOnHand($input: InventorySetOnHandQuantitiesInput!) {
  inventorySetOnHandQuantities(input: $input) {
    inventoryAdjustmentGroup { id reason }
    userErrors { field message code }
  }
}
""".strip()


# 直接写 available（校验失败后的一次性纠正）
INVENTORY_SET_QUANTITIES = """
mutation SetQuantities($input: InventorySetQuantitiesInput!) {
  inventorySetQuantities(input: $input) {
    inventoryAdjustmentGroup { id reason }
    userErrors { field message code }
  }
}
""".strip()


# ---------------- 订单 ----------------

ORDER_METAFIELD = """
query OrderMetafield($id: ID!, $namespace: String!, $key: String!) {
  order(id: $id) {
    id
    metafield(namespace: $namespace, key: $key) {
      id
      type
      value
    }
  }
}
""".strip()


TAGS_ADD = """
mutation TagsAdd($id: ID!, $tags: [String!]!) {
  tagsAdd(id: $id, tags: $tags) {
    node { id }
    userErrors { field message }
  }
}
""".strip()


METAFIELDS_SET = """
mutation MetafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { id key namespace }
    userErrors { field message code }
  }
}
""".strip()


ORDERS_BY_QUERY = """
query OrdersByQuery($query: String!, $first: Int!) {
  orders(first: $first, query: $query) {
    edges {
      node {
        id
        name
        tags
        cancelledAt
        displayFulfillmentStatus
      }
    }
  }
}
""".strip()


SHOP_PING = """
{
  shop {
    name
    myshopifyDomain
    plan { displayName }
  }
}
""".strip()
