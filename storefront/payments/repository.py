from storefront.api.client import StorefrontApi
from storefront.payments.models import PaymentIntent, PaymentVerification


async def post_create_intent(api: StorefrontApi, order_id: str, currency: str) -> PaymentIntent:
    data = await api.post("/payments/create-intent", json={"orderId": order_id, "currency": currency})
    return PaymentIntent.model_validate(data)


async def post_verify_payment(api: StorefrontApi, payment_intent_id: str, order_id: str) -> PaymentVerification:
    data = await api.post("/payments/verify", json={"paymentIntentId": payment_intent_id, "orderId": order_id})
    return PaymentVerification.model_validate(data)
