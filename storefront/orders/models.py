from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import Field

from storefront.common.models import ApiModel, ProductRef, id_field
from storefront.orders.constants import DEFAULT_COUNTRY


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ShippingAddress(ApiModel):
    street: str
    city: str
    state: str
    zip_code: str
    country: str = DEFAULT_COUNTRY


class OrderItem(ApiModel):
    product: ProductRef
    name: str = ""
    price: float = Field(ge=0)
    quantity: int = Field(ge=1)
    image: str = ""
    subtotal: float = Field(0, ge=0)


class StatusHistoryEntry(ApiModel):
    status: OrderStatus
    timestamp: Optional[datetime] = None
    note: str = ""


class Order(ApiModel):
    id: str = id_field()
    order_number: str = ""
    items: Tuple[OrderItem, ...] = ()
    total_amount: float = 0
    payment_intent: str = ""
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.PENDING
    shipping_address: Optional[ShippingAddress] = None
    tracking_number: str = ""
    status_history: Tuple[StatusHistoryEntry, ...] = ()
    notes: str = ""
    created_at: Optional[datetime] = None

    @property
    def latest_status_entry(self) -> Optional[StatusHistoryEntry]:
        return self.status_history[-1] if self.status_history else None


class Pagination(ApiModel):
    page: int = 1
    limit: int = 10
    total: int = 0
    pages: int = 0


class OrderPage(ApiModel):
    orders: Tuple[Order, ...] = ()
    pagination: Pagination = Pagination()
