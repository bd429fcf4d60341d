from typing import Any, Callable, Mapping, Optional, Union

from storefront.api.client import StorefrontApi
from storefront.api.constants import CART_TAG, ORDERS_TAG
from storefront.cache.store import QueryCache, QuerySnapshot, Subscription
from storefront.cart.constants import CART_QUERY
from storefront.common.custom_exceptions import CheckoutValidationError, OrderStateError, StorefrontValidationError
from storefront.orders.constants import DEFAULT_PAGE_SIZE, ORDER_QUERY, USER_ORDERS_QUERY, logger
from storefront.orders.models import Order, OrderPage, OrderStatus, ShippingAddress
from storefront.orders.repository import (
    fetch_order,
    fetch_user_orders,
    parse_order,
    post_cancel_order,
    post_confirm_cod,
    post_order,
    post_sync_courier,
)
from storefront.orders.utils import can_be_cancelled, validate_shipping_address


def _order_or_none(data: Any) -> Optional[Order]:
    if isinstance(data, dict) and isinstance(data.get("order"), dict):
        return parse_order(data)
    return None


class OrderService:
    def __init__(self, api: StorefrontApi, cache: QueryCache):
        self.api = api
        self.cache = cache

    async def create_order(self, shipping_address: Union[ShippingAddress, Mapping[str, Any]],
                           notes: str = "") -> Order:
        """Place an order from the current server-side cart."""
        address = validate_shipping_address(shipping_address)

        cart_snap = self.cache.select(CART_QUERY)
        if cart_snap is not None and cart_snap.has_data and cart_snap.value.is_empty:
            raise CheckoutValidationError("Cart is empty")

        order = await post_order(self.api, address, notes)
        self.cache.invalidate_tags(CART_TAG, ORDERS_TAG)
        logger.info("orders.created", extra={"order_id": order.id, "order_number": order.order_number})
        return order

    async def get_user_orders(self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE,
                              status: Optional[Union[OrderStatus, str]] = None,
                              force: bool = False) -> OrderPage:
        if page < 1 or limit < 1:
            raise StorefrontValidationError("page and limit must be positive")
        status_value = status.value if isinstance(status, OrderStatus) else status
        args = {"page": page, "limit": limit, "status": status_value}
        return await self.cache.query(
            USER_ORDERS_QUERY, args,
            lambda: fetch_user_orders(self.api, page, limit, status_value),
            tags=(ORDERS_TAG,), force=force,
        )

    async def get_order_by_id(self, order_id: str, force: bool = False) -> Order:
        return await self.cache.query(
            ORDER_QUERY, order_id,
            lambda: fetch_order(self.api, order_id),
            tags=((ORDERS_TAG, order_id),), force=force,
        )

    def watch_order(self, order_id: str, callback: Callable[[QuerySnapshot], None]) -> Subscription:
        return self.cache.subscribe(
            ORDER_QUERY, order_id, callback,
            fetcher=lambda: fetch_order(self.api, order_id),
            tags=((ORDERS_TAG, order_id),), refetch_on_subscribe=True,
        )

    def cached_order(self, order_id: str) -> Optional[Order]:
        snap = self.cache.select(ORDER_QUERY, order_id)
        return snap.value if snap is not None and snap.has_data else None

    async def cancel_order(self, order_id: str, reason: str = "") -> Optional[Order]:
        cached = self.cached_order(order_id)
        if cached is not None and not can_be_cancelled(cached):
            raise OrderStateError(f"Order cannot be cancelled. Current status: {cached.order_status.value}")

        data = await post_cancel_order(self.api, order_id, reason)
        self.cache.invalidate_tags((ORDERS_TAG, order_id), ORDERS_TAG)
        logger.info("orders.cancelled", extra={"order_id": order_id})
        return _order_or_none(data)

    async def confirm_cod_order(self, order_id: str) -> Optional[Order]:
        data = await post_confirm_cod(self.api, order_id)
        self.cache.invalidate_tags(CART_TAG, ORDERS_TAG)
        logger.info("orders.cod_confirmed", extra={"order_id": order_id})
        return _order_or_none(data)

    async def sync_order_with_courier(self, order_id: str) -> Optional[Order]:
        data = await post_sync_courier(self.api, order_id)
        self.cache.invalidate_tags((ORDERS_TAG, order_id))
        return _order_or_none(data)
