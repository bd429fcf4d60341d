from typing import Any, Dict, Mapping, Union

from pydantic import ValidationError

from storefront.common.custom_exceptions import CheckoutValidationError
from storefront.orders.constants import DEFAULT_COUNTRY, SHIPPING_FIELD_MESSAGES
from storefront.orders.models import Order, OrderStatus, PaymentStatus, ShippingAddress

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
    OrderStatus.PROCESSING: (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
    OrderStatus.SHIPPED: (OrderStatus.DELIVERED,),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
}

CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING)


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    if current == new:
        return True
    return new in ORDER_TRANSITIONS.get(current, ())


def can_be_cancelled(order: Order) -> bool:
    return order.order_status in CANCELLABLE_STATUSES and order.payment_status != PaymentStatus.REFUNDED


def shipping_field_errors(data: Mapping[str, Any]) -> Dict[str, str]:
    """Field -> message for every missing or blank address field (snake_case or camelCase keys)."""
    errors = {}
    for field, message in SHIPPING_FIELD_MESSAGES.items():
        value = data.get(field)
        if value is None and field == "zip_code":
            value = data.get("zipCode")
        if not isinstance(value, str) or not value.strip():
            errors[field] = message
    return errors


def validate_shipping_address(address: Union[ShippingAddress, Mapping[str, Any]]) -> ShippingAddress:
    if isinstance(address, ShippingAddress):
        data = address.model_dump()
    else:
        data = dict(address)
        data.setdefault("country", DEFAULT_COUNTRY)

    errors = shipping_field_errors(data)
    if errors:
        raise CheckoutValidationError("Please complete the shipping address", field_errors=errors)

    cleaned = {k: v.strip() if isinstance(v, str) else v for k, v in data.items()}
    try:
        return ShippingAddress.model_validate(cleaned)
    except ValidationError as exc:
        field_errors = {".".join(map(str, e["loc"])): e["msg"] for e in exc.errors()}
        raise CheckoutValidationError("Invalid shipping address", field_errors=field_errors) from exc
