import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport

from storefront.config.settings import Settings
from storefront.main import Storefront
from tests.fake_api import FakeApiState, create_fake_api


@pytest.fixture
def api_state():
    return FakeApiState.with_catalog()


@pytest.fixture
async def fake_app(api_state):
    app = create_fake_api(api_state)
    async with LifespanManager(app):
        yield app


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        ENV="dev",
        API_URL="http://test/api",
        PAYMENT_PUBLISHABLE_KEY="pk_test_storefront",
        READ_RETRY_ATTEMPTS=3,
        READ_RETRY_BASE_DELAY=0.0,
        KEEP_UNUSED_DATA_FOR=60.0,
    )


@pytest.fixture
async def storefront(fake_app, test_settings):
    store = Storefront(test_settings, transport=ASGITransport(app=fake_app))
    try:
        yield store
    finally:
        await store.aclose()


@pytest.fixture
def snapshots():
    """Subscriber callback that records every snapshot it receives."""
    seen = []

    def record(snap):
        seen.append(snap)

    record.seen = seen
    return record
