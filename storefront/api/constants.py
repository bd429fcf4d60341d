from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.api")

# tag types the cache understands
CART_TAG = "Cart"
ORDERS_TAG = "Orders"
