from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import httpx

from storefront import __version__
from storefront.api.client import StorefrontApi
from storefront.cache.store import QueryCache
from storefront.cart.services import CartService
from storefront.common.feedback import FeedbackSink
from storefront.common.logging_setup import get_logger, setup_logging, shutdown_logging
from storefront.config.settings import Settings, client_settings
from storefront.orders.services import OrderService
from storefront.payments.services import PaymentService

logger = get_logger("storefront")


class Storefront:
    """One shopper session: API client, query cache and the feature services sharing them."""

    def __init__(self, settings: Settings = client_settings, *,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 cookies: Optional[Dict[str, str]] = None):
        self.settings = settings
        self.api = StorefrontApi(settings=settings, transport=transport, cookies=cookies)
        self.cache = QueryCache(keep_unused_for=settings.KEEP_UNUSED_DATA_FOR)
        self.feedback = FeedbackSink()

        self.cart = CartService(self.api, self.cache)
        self.orders = OrderService(self.api, self.cache)
        self.payments = PaymentService(self.api, self.cache, settings.PAYMENT_PUBLISHABLE_KEY)

    async def aclose(self) -> None:
        # background re-fetches use the http client, stop them first
        await self.cache.close()
        await self.api.aclose()


@asynccontextmanager
async def open_storefront(settings: Optional[Settings] = None,
                          transport: Optional[httpx.AsyncBaseTransport] = None) -> AsyncIterator[Storefront]:
    settings = settings or client_settings
    setup_logging()
    store = Storefront(settings, transport=transport)
    logger.info("storefront.opened", extra={"api_url": settings.API_URL, "version": __version__})
    payment_state = store.payments.config_state()
    if not payment_state.ready:
        logger.warning("storefront.payments_misconfigured")
    try:
        yield store
    finally:
        await store.aclose()
        logger.info("storefront.closed")
        shutdown_logging()
