from typing import Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Immutable snapshot of an API document; camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


def id_field(default=...):
    # mongo style documents expose `_id`, virtual-enabled ones also `id`
    return Field(default, validation_alias=AliasChoices("_id", "id"), serialization_alias="_id")


class ProductImage(ApiModel):
    url: str = ""
    public_id: Optional[str] = None


class ProductSummary(ApiModel):
    """Populated product as the server embeds it in cart and order items."""
    id: str = id_field()
    name: str = ""
    price: Optional[float] = None
    images: Tuple[ProductImage, ...] = ()
    stock: Optional[int] = None

    @property
    def image_url(self) -> str:
        return self.images[0].url if self.images else ""


# populated object or bare id
ProductRef = Union[ProductSummary, str]


def resolve_product_id(ref: ProductRef) -> str:
    if isinstance(ref, ProductSummary):
        return ref.id
    return str(ref)
