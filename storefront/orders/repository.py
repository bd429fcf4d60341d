from typing import Any, Dict, Optional
from urllib.parse import quote

from storefront.api.client import StorefrontApi
from storefront.orders.models import Order, OrderPage, ShippingAddress


def parse_order(data: Any) -> Order:
    if isinstance(data, dict) and isinstance(data.get("order"), dict):
        data = data["order"]
    return Order.model_validate(data)


def _order_path(order_id: str, action: str = "") -> str:
    path = f"/orders/{quote(order_id, safe='')}"
    return f"{path}/{action}" if action else path


async def post_order(api: StorefrontApi, shipping_address: ShippingAddress, notes: str = "") -> Order:
    body = {
        "shippingAddress": shipping_address.model_dump(mode="json", by_alias=True),
        "notes": notes,
    }
    return parse_order(await api.post("/orders", json=body))


async def fetch_user_orders(api: StorefrontApi, page: int, limit: int, status: Optional[str] = None) -> OrderPage:
    params: Dict[str, Any] = {"page": page, "limit": limit}
    if status:
        params["status"] = status
    data = await api.get("/orders", params=params)
    return OrderPage.model_validate(data or {})


async def fetch_order(api: StorefrontApi, order_id: str) -> Order:
    return parse_order(await api.get(_order_path(order_id)))


async def post_cancel_order(api: StorefrontApi, order_id: str, reason: str = "") -> Any:
    return await api.post(_order_path(order_id, "cancel"), json={"reason": reason})


async def post_confirm_cod(api: StorefrontApi, order_id: str) -> Any:
    return await api.post(_order_path(order_id, "confirm-cod"))


async def post_sync_courier(api: StorefrontApi, order_id: str) -> Any:
    return await api.post(_order_path(order_id, "sync-courier"))
