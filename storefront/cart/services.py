from typing import Awaitable, Callable, Optional

from storefront.api.client import StorefrontApi
from storefront.api.constants import CART_TAG
from storefront.cache.store import QueryCache, QuerySnapshot, Subscription
from storefront.cart.constants import CART_QUERY, logger
from storefront.cart.models import Cart
from storefront.cart.repository import delete_cart, delete_cart_item, fetch_cart, patch_cart_item, post_cart_item
from storefront.cart.utils import (
    patch_add_item,
    patch_clear,
    patch_remove_item,
    patch_update_quantity,
    quantity_in_bounds,
    validate_product_id,
    validate_quantity,
)
from storefront.common.custom_exceptions import StorefrontError
from storefront.common.models import ProductSummary


class CartService:
    """
    Cart reads and optimistic cart mutations.

    Every mutation validates its input first, patches the cached cart
    synchronously, then calls the API. On success the cart tag is invalidated
    so subscribers re-fetch the server's version; on failure exactly this
    mutation's patch is rolled back before the error reaches the caller.
    """

    def __init__(self, api: StorefrontApi, cache: QueryCache):
        self.api = api
        self.cache = cache

    def _fetch(self) -> Awaitable[Cart]:
        return fetch_cart(self.api)

    async def get_cart(self, force: bool = False) -> Cart:
        return await self.cache.query(CART_QUERY, None, self._fetch, tags=(CART_TAG,), force=force)

    def watch_cart(self, callback: Callable[[QuerySnapshot], None]) -> Subscription:
        return self.cache.subscribe(CART_QUERY, None, callback, fetcher=self._fetch, tags=(CART_TAG,),
                                    refetch_on_subscribe=True)

    def cached_cart(self) -> Optional[Cart]:
        snap = self.cache.select(CART_QUERY)
        return snap.value if snap is not None and snap.has_data else None

    async def _mutate(self, operation: str, recipe: Callable[[Cart], Cart],
                      call: Callable[[], Awaitable[Cart]], reconcile: bool = False) -> Cart:
        with self.cache.transaction(CART_QUERY, fetcher=self._fetch, tags=(CART_TAG,)) as txn:
            txn.patch(recipe)
            try:
                cart = await call()
            except StorefrontError as exc:
                logger.warning(
                    "cart.mutation_failed",
                    extra={"operation": operation, "error": exc.message, "rolled_back": txn.patched},
                )
                raise
            if reconcile:
                # the server answered with the whole cart; take it as authoritative right away
                txn.confirm(cart)
        self.cache.invalidate_tags(CART_TAG)
        logger.info("cart.mutation_ok", extra={"operation": operation, "items": len(cart.items)})
        return cart

    async def add_to_cart(self, product_id: str, quantity: int = 1,
                          product: Optional[ProductSummary] = None) -> Cart:
        product_id = validate_product_id(product_id)
        quantity = validate_quantity(quantity)
        return await self._mutate(
            "add",
            lambda c: patch_add_item(c, product_id, quantity, product),
            lambda: post_cart_item(self.api, product_id, quantity),
            reconcile=True,
        )

    async def update_cart_item(self, product_id: str, quantity: int) -> Cart:
        product_id = validate_product_id(product_id)
        quantity = validate_quantity(quantity)
        return await self._mutate(
            "update",
            lambda c: patch_update_quantity(c, product_id, quantity),
            lambda: patch_cart_item(self.api, product_id, quantity),
        )

    async def remove_from_cart(self, product_id: str) -> Cart:
        product_id = validate_product_id(product_id)
        return await self._mutate(
            "remove",
            lambda c: patch_remove_item(c, product_id),
            lambda: delete_cart_item(self.api, product_id),
        )

    async def clear_cart(self) -> Cart:
        return await self._mutate("clear", patch_clear, lambda: delete_cart(self.api))

    async def handle_quantity_change(self, product_id: str, new_quantity: int) -> Optional[Cart]:
        """Quantity stepper handler: out-of-range values are ignored, not reported."""
        if not quantity_in_bounds(new_quantity):
            return None
        return await self.update_cart_item(product_id, new_quantity)
