from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.payments")

DEFAULT_CURRENCY = "usd"

MISSING_KEY_MESSAGE = "Payment is not configured. Please contact support."
