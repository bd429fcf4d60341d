from dataclasses import dataclass
from enum import Enum
from typing import Optional

from storefront.common.models import ApiModel


class PaymentIntent(ApiModel):
    client_secret: str
    payment_intent_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None


class PaymentVerification(ApiModel):
    status: str
    order_id: Optional[str] = None

    @property
    def paid(self) -> bool:
        return self.status == "paid"


class PaymentConfigStatus(str, Enum):
    READY = "ready"
    MISCONFIGURED = "misconfigured"


@dataclass(frozen=True)
class PaymentConfigState:
    status: PaymentConfigStatus
    publishable_key: Optional[str] = None
    message: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.status is PaymentConfigStatus.READY
