from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.orders")

ORDER_QUERY = "getOrderById"
USER_ORDERS_QUERY = "getUserOrders"

DEFAULT_PAGE_SIZE = 10
DEFAULT_COUNTRY = "US"

SHIPPING_FIELD_MESSAGES = {
    "street": "Street address is required",
    "city": "City is required",
    "state": "State is required",
    "zip_code": "ZIP code is required",
    "country": "Country is required",
}
