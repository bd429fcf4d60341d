from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.cart")

CART_QUERY = "getCart"

MIN_ITEM_QTY = 1
MAX_ITEM_QTY = 99
