from typing import Optional

from storefront.api.client import StorefrontApi
from storefront.api.constants import CART_TAG, ORDERS_TAG
from storefront.cache.store import QueryCache
from storefront.common.custom_exceptions import PaymentConfigError, StorefrontValidationError
from storefront.payments.constants import DEFAULT_CURRENCY, MISSING_KEY_MESSAGE, logger
from storefront.payments.models import (
    PaymentConfigState,
    PaymentConfigStatus,
    PaymentIntent,
    PaymentVerification,
)
from storefront.payments.repository import post_create_intent, post_verify_payment


class PaymentService:
    """
    Card payment bookkeeping around the external payment SDK.

    The SDK itself confirms the card payment in the browser/app; this service
    only asks the API for a payment intent and reports the confirmed intent
    back. A missing publishable key is a configuration error state, never a
    crash: `config_state()` reports it and the operations refuse to start.
    """

    def __init__(self, api: StorefrontApi, cache: QueryCache, publishable_key: Optional[str] = None):
        self.api = api
        self.cache = cache
        self.publishable_key = publishable_key

    def config_state(self) -> PaymentConfigState:
        key = (self.publishable_key or "").strip()
        if not key:
            return PaymentConfigState(status=PaymentConfigStatus.MISCONFIGURED, message=MISSING_KEY_MESSAGE)
        return PaymentConfigState(status=PaymentConfigStatus.READY, publishable_key=key)

    def require_configured(self) -> str:
        state = self.config_state()
        if not state.ready:
            logger.error("payments.publishable_key_missing")
            raise PaymentConfigError(state.message or MISSING_KEY_MESSAGE)
        return state.publishable_key

    async def create_payment_intent(self, order_id: str, currency: str = DEFAULT_CURRENCY) -> PaymentIntent:
        self.require_configured()
        if not order_id:
            raise StorefrontValidationError("Order ID is required", field_errors={"orderId": "required"})
        intent = await post_create_intent(self.api, order_id, currency)
        logger.info("payments.intent_created", extra={"order_id": order_id})
        return intent

    async def verify_payment(self, payment_intent_id: str, order_id: str) -> PaymentVerification:
        missing = {}
        if not payment_intent_id:
            missing["paymentIntentId"] = "required"
        if not order_id:
            missing["orderId"] = "required"
        if missing:
            raise StorefrontValidationError("Payment intent ID and order ID are required", field_errors=missing)
        result = await post_verify_payment(self.api, payment_intent_id, order_id)
        self.cache.invalidate_tags(CART_TAG, ORDERS_TAG)
        logger.info("payments.verified", extra={"order_id": order_id, "payment_intent_id": payment_intent_id,
                                                "status": result.status})
        return result
