from typing import Any, Optional

from storefront.cart.constants import MAX_ITEM_QTY, MIN_ITEM_QTY
from storefront.cart.models import Cart, CartItem
from storefront.common.custom_exceptions import CartValidationError
from storefront.common.models import ProductSummary


def item_matches(item: CartItem, product_id: str) -> bool:
    # product_id resolves the populated object first, then the bare id
    return item.product_id == product_id


def find_item(cart: Cart, product_id: str) -> Optional[CartItem]:
    for item in cart.items:
        if item_matches(item, product_id):
            return item
    return None


def quantity_in_bounds(quantity: Any) -> bool:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        return False
    return MIN_ITEM_QTY <= quantity <= MAX_ITEM_QTY


def validate_quantity(quantity: Any) -> int:
    if not quantity_in_bounds(quantity):
        raise CartValidationError(
            f"Quantity must be a whole number between {MIN_ITEM_QTY} and {MAX_ITEM_QTY}",
            field_errors={"quantity": f"must be between {MIN_ITEM_QTY} and {MAX_ITEM_QTY}"},
        )
    return quantity


def validate_product_id(product_id: Any) -> str:
    if not isinstance(product_id, str) or not product_id.strip():
        raise CartValidationError("Product ID is required", field_errors={"productId": "required"})
    return product_id.strip()


# ── optimistic patch recipes: (Cart) -> Cart, never mutate the input ────────

def patch_update_quantity(cart: Cart, product_id: str, quantity: int) -> Cart:
    if find_item(cart, product_id) is None:
        return cart
    items = tuple(
        item.model_copy(update={"quantity": quantity}) if item_matches(item, product_id) else item
        for item in cart.items
    )
    return cart.model_copy(update={"items": items})


def patch_remove_item(cart: Cart, product_id: str) -> Cart:
    items = tuple(item for item in cart.items if not item_matches(item, product_id))
    if len(items) == len(cart.items):
        return cart
    return cart.model_copy(update={"items": items})


def patch_clear(cart: Cart) -> Cart:
    if not cart.items:
        return cart
    return cart.model_copy(update={"items": ()})


def patch_add_item(cart: Cart, product_id: str, quantity: int,
                   product: Optional[ProductSummary] = None) -> Cart:
    """
    Increment an existing line, or append a new one when a product snapshot
    is at hand. Without a snapshot a new line cannot be priced, so the cart
    is returned untouched and the server response fills it in.
    """
    existing = find_item(cart, product_id)
    if existing is not None:
        return patch_update_quantity(cart, product_id, existing.quantity + quantity)
    if product is None or product.price is None:
        return cart
    new_item = CartItem(
        product=product,
        quantity=quantity,
        price=product.price,
        name=product.name,
        image=product.image_url,
    )
    return cart.model_copy(update={"items": (*cart.items, new_item)})
