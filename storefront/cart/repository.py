from typing import Any
from urllib.parse import quote

from storefront.api.client import StorefrontApi
from storefront.cart.models import Cart


def parse_cart(data: Any) -> Cart:
    # GET /cart wraps the cart as { cart, itemCount }, mutations return it bare
    if isinstance(data, dict) and isinstance(data.get("cart"), dict):
        data = data["cart"]
    if not data:
        return Cart()
    return Cart.model_validate(data)


def _item_path(product_id: str) -> str:
    return f"/cart/items/{quote(product_id, safe='')}"


async def fetch_cart(api: StorefrontApi) -> Cart:
    return parse_cart(await api.get("/cart"))


async def post_cart_item(api: StorefrontApi, product_id: str, quantity: int) -> Cart:
    data = await api.post("/cart/items", json={"productId": product_id, "quantity": quantity})
    return parse_cart(data)


async def patch_cart_item(api: StorefrontApi, product_id: str, quantity: int) -> Cart:
    return parse_cart(await api.patch(_item_path(product_id), json={"quantity": quantity}))


async def delete_cart_item(api: StorefrontApi, product_id: str) -> Cart:
    return parse_cart(await api.delete(_item_path(product_id)))


async def delete_cart(api: StorefrontApi) -> Cart:
    return parse_cart(await api.delete("/cart"))
