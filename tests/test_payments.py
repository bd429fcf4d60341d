import pytest
from httpx import ASGITransport

from storefront.common.custom_exceptions import PaymentConfigError, StorefrontValidationError
from storefront.common.feedback import NoticeKind, run_with_feedback
from storefront.main import Storefront
from storefront.orders.models import OrderStatus, PaymentStatus
from storefront.payments.models import PaymentConfigStatus

ADDRESS = {"street": "1 Main St", "city": "Austin", "state": "TX", "zipCode": "73301"}


@pytest.fixture
async def unconfigured_storefront(fake_app, test_settings):
    settings = test_settings.model_copy(update={"PAYMENT_PUBLISHABLE_KEY": None})
    store = Storefront(settings, transport=ASGITransport(app=fake_app))
    try:
        yield store
    finally:
        await store.aclose()


async def place_order(storefront, api_state):
    api_state.put_in_cart("p2", 1)
    return await storefront.orders.create_order(ADDRESS)


@pytest.mark.asyncio
async def test_config_state_ready(storefront):
    state = storefront.payments.config_state()
    assert state.ready
    assert state.publishable_key == "pk_test_storefront"
    assert storefront.payments.require_configured() == "pk_test_storefront"


@pytest.mark.asyncio
async def test_missing_key_is_a_config_error_state(unconfigured_storefront, api_state):
    state = unconfigured_storefront.payments.config_state()
    assert state.status is PaymentConfigStatus.MISCONFIGURED
    assert not state.ready
    assert state.message

    with pytest.raises(PaymentConfigError):
        unconfigured_storefront.payments.require_configured()

    order = await place_order(unconfigured_storefront, api_state)
    result = await run_with_feedback(
        unconfigured_storefront.feedback,
        unconfigured_storefront.payments.create_payment_intent(order.id),
    )
    assert result is None
    assert unconfigured_storefront.feedback.last.kind is NoticeKind.CONFIG_ERROR
    assert api_state.count("POST /payments/create-intent") == 0


@pytest.mark.asyncio
async def test_blank_key_counts_as_missing(fake_app, test_settings):
    settings = test_settings.model_copy(update={"PAYMENT_PUBLISHABLE_KEY": "   "})
    store = Storefront(settings, transport=ASGITransport(app=fake_app))
    try:
        assert not store.payments.config_state().ready
    finally:
        await store.aclose()


@pytest.mark.asyncio
async def test_card_payment_flow(storefront, api_state):
    order = await place_order(storefront, api_state)
    await storefront.cart.get_cart()
    await storefront.orders.get_order_by_id(order.id)

    intent = await storefront.payments.create_payment_intent(order.id)
    assert intent.client_secret == f"pi_{order.id}_secret"
    assert intent.amount == 4000
    assert intent.currency == "usd"

    verification = await storefront.payments.verify_payment(intent.payment_intent_id, order.id)
    assert verification.paid
    assert verification.order_id == order.id

    assert storefront.cache.select("getCart").stale is True
    assert storefront.cache.select("getOrderById", order.id).stale is True
    paid = await storefront.orders.get_order_by_id(order.id)
    assert paid.payment_status is PaymentStatus.PAID
    assert paid.order_status is OrderStatus.PROCESSING


@pytest.mark.asyncio
async def test_verify_requires_both_ids(storefront, api_state):
    with pytest.raises(StorefrontValidationError) as exc_info:
        await storefront.payments.verify_payment("", "order-1")
    assert exc_info.value.field_errors == {"paymentIntentId": "required"}
    assert not api_state.calls
