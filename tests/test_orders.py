import pytest

from storefront.common.custom_exceptions import ApiError, CheckoutValidationError, OrderStateError
from storefront.orders.models import Order, OrderStatus, PaymentStatus, ShippingAddress
from storefront.orders.utils import can_be_cancelled, can_transition, validate_shipping_address

ADDRESS = {"street": "12 Elm St", "city": "Springfield", "state": "IL", "zipCode": "62701"}


async def place_order(storefront, api_state, **items):
    for pid, qty in (items or {"p1": 1}).items():
        api_state.put_in_cart(pid, qty)
    await storefront.cart.get_cart()
    return await storefront.orders.create_order(ADDRESS, notes="Leave at the door")


@pytest.mark.asyncio
async def test_create_order_then_fetch_it(storefront, api_state):
    order = await place_order(storefront, api_state, p1=2, p3=1)

    assert order.id == "order-1"
    assert order.total_amount == 58.5
    assert order.shipping_address.zip_code == "62701"
    assert order.shipping_address.country == "US"

    fetched = await storefront.orders.get_order_by_id(order.id)
    assert fetched.order_status in (OrderStatus.PENDING, OrderStatus.PROCESSING)
    assert fetched.order_status == fetched.status_history[0].status
    assert fetched.notes == "Leave at the door"


@pytest.mark.asyncio
async def test_create_order_invalidates_cart(storefront, api_state):
    await place_order(storefront, api_state)

    assert storefront.cache.select("getCart").stale is True
    cart = await storefront.cart.get_cart()
    assert cart.is_empty
    assert api_state.count("GET /cart") == 2


@pytest.mark.asyncio
async def test_incomplete_address_is_rejected_locally(storefront, api_state):
    api_state.put_in_cart("p1", 1)

    with pytest.raises(CheckoutValidationError) as exc_info:
        await storefront.orders.create_order({"street": "12 Elm St", "city": " ", "state": "IL"})

    assert exc_info.value.field_errors == {
        "city": "City is required",
        "zip_code": "ZIP code is required",
    }
    assert api_state.count("POST /orders") == 0


@pytest.mark.asyncio
async def test_known_empty_cart_is_rejected_locally(storefront, api_state):
    await storefront.cart.get_cart()

    with pytest.raises(CheckoutValidationError, match="Cart is empty"):
        await storefront.orders.create_order(ADDRESS)
    assert api_state.count("POST /orders") == 0


@pytest.mark.asyncio
async def test_server_rejection_surfaces_its_message(storefront, api_state):
    with pytest.raises(ApiError) as exc_info:
        await storefront.orders.create_order(ADDRESS)

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Cart is empty"


@pytest.mark.asyncio
async def test_order_list_refreshes_after_new_order(storefront, api_state):
    first = await storefront.orders.get_user_orders()
    assert first.orders == ()
    assert first.pagination.total == 0

    await place_order(storefront, api_state)
    page = await storefront.orders.get_user_orders()

    assert [o.order_number for o in page.orders] == ["ORD-00001"]
    assert page.pagination.pages == 1
    assert api_state.count("GET /orders") == 2


@pytest.mark.asyncio
async def test_order_list_filters_are_separate_entries(storefront, api_state):
    await place_order(storefront, api_state)

    pending = await storefront.orders.get_user_orders(status=OrderStatus.PENDING)
    shipped = await storefront.orders.get_user_orders(status="shipped", limit=5)

    assert len(pending.orders) == 1
    assert shipped.orders == ()
    assert shipped.pagination.limit == 5


@pytest.mark.asyncio
async def test_cancel_pending_order(storefront, api_state, snapshots):
    order = await place_order(storefront, api_state)
    sub = storefront.orders.watch_order(order.id, snapshots)
    await storefront.cache.settle()

    result = await storefront.orders.cancel_order(order.id, reason="Changed my mind")
    await storefront.cache.settle()

    assert result.order_status is OrderStatus.CANCELLED
    assert sub.snapshot.value.order_status is OrderStatus.CANCELLED
    assert sub.snapshot.value.latest_status_entry.note == "Changed my mind"
    sub.unsubscribe()


@pytest.mark.asyncio
async def test_watch_order_reloads_a_cached_order(storefront, api_state, snapshots):
    order = await place_order(storefront, api_state)
    await storefront.orders.get_order_by_id(order.id)
    api_state.orders[order.id]["trackingNumber"] = "TRK-LATE"

    sub = storefront.orders.watch_order(order.id, snapshots)
    await storefront.cache.settle()

    assert sub.snapshot.value.tracking_number == "TRK-LATE"
    assert api_state.count(f"GET /orders/{order.id}") == 2
    sub.unsubscribe()


@pytest.mark.asyncio
async def test_shipped_order_cannot_be_cancelled(storefront, api_state):
    order = await place_order(storefront, api_state)
    await storefront.orders.confirm_cod_order(order.id)
    synced = await storefront.orders.sync_order_with_courier(order.id)
    assert synced.tracking_number == f"TRK-{order.id}"

    shipped = await storefront.orders.get_order_by_id(order.id)
    assert shipped.order_status is OrderStatus.SHIPPED

    with pytest.raises(OrderStateError):
        await storefront.orders.cancel_order(order.id)
    assert api_state.count(f"POST /orders/{order.id}/cancel") == 0


@pytest.mark.asyncio
async def test_confirm_cod_refreshes_order_views(storefront, api_state):
    order = await place_order(storefront, api_state)
    await storefront.orders.get_order_by_id(order.id)

    await storefront.orders.confirm_cod_order(order.id)

    assert storefront.cache.select("getOrderById", order.id).stale is True
    refreshed = await storefront.orders.get_order_by_id(order.id)
    assert refreshed.order_status is OrderStatus.PROCESSING
    assert [h.status for h in refreshed.status_history] == [OrderStatus.PENDING, OrderStatus.PROCESSING]


@pytest.mark.asyncio
async def test_unknown_order_is_not_found(storefront):
    with pytest.raises(ApiError) as exc_info:
        await storefront.orders.get_order_by_id("missing")
    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "Order not found"


@pytest.mark.parametrize("current,new,ok", [
    (OrderStatus.PENDING, OrderStatus.PROCESSING, True),
    (OrderStatus.PENDING, OrderStatus.CANCELLED, True),
    (OrderStatus.PROCESSING, OrderStatus.SHIPPED, True),
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED, True),
    (OrderStatus.SHIPPED, OrderStatus.CANCELLED, False),
    (OrderStatus.DELIVERED, OrderStatus.PENDING, False),
    (OrderStatus.CANCELLED, OrderStatus.PROCESSING, False),
])
def test_status_transitions(current, new, ok):
    assert can_transition(current, new) is ok


def test_refunded_order_cannot_be_cancelled():
    order = Order.model_validate({"_id": "o1", "orderStatus": "processing", "paymentStatus": "refunded"})
    assert not can_be_cancelled(order)
    assert can_be_cancelled(order.model_copy(update={"payment_status": PaymentStatus.PAID}))


def test_validate_shipping_address_strips_and_defaults():
    address = validate_shipping_address({**ADDRESS, "street": "  12 Elm St  "})
    assert address == ShippingAddress(street="12 Elm St", city="Springfield", state="IL", zip_code="62701")
