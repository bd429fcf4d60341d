from typing import Optional, Tuple

from pydantic import Field, computed_field

from storefront.common.models import ApiModel, ProductRef, id_field, resolve_product_id


class CartItem(ApiModel):
    product: ProductRef
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    name: str = ""
    image: str = ""

    @property
    def product_id(self) -> str:
        return resolve_product_id(self.product)

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class Cart(ApiModel):
    """
    Cart snapshot. `total_price` and `item_count` are derived from `items`
    on every access; whatever totals the server sends are ignored.
    """
    id: Optional[str] = id_field(None)
    items: Tuple[CartItem, ...] = ()

    @computed_field(alias="totalPrice")
    @property
    def total_price(self) -> float:
        return sum(item.line_total for item in self.items)

    @computed_field(alias="itemCount")
    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items
