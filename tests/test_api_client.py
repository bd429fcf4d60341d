import uuid

import httpx
import pytest

from storefront.api.client import StorefrontApi
from storefront.common.constants import FALLBACK_ERROR_MESSAGE
from storefront.common.custom_exceptions import (
    ApiError,
    AuthRequiredError,
    NetworkError,
    extract_error_message,
)
from storefront.common.retries import is_recoverable_exception, retry_transient


@pytest.mark.asyncio
async def test_envelope_is_unwrapped(storefront, api_state):
    api_state.put_in_cart("p1", 1)
    data = await storefront.api.get("/cart")
    assert data["itemCount"] == 1
    assert data["cart"]["_id"] == "cart-1"


@pytest.mark.asyncio
async def test_request_ids_are_uuid7(storefront, api_state):
    await storefront.api.get("/cart")
    await storefront.api.delete("/cart")

    ids = [uuid.UUID(rid) for rid in api_state.request_ids]
    assert len(set(ids)) == 2
    assert all(i.version == 7 for i in ids)


@pytest.mark.asyncio
async def test_reads_retry_transient_server_errors(storefront, api_state):
    api_state.fail("GET /cart", 503, "Service unavailable", times=2)

    cart = await storefront.cart.get_cart()

    assert cart.is_empty
    assert api_state.count("GET /cart") == 3


@pytest.mark.asyncio
async def test_reads_give_up_after_configured_attempts(storefront, api_state):
    api_state.fail("GET /cart", 502, "Bad gateway", times=5)

    with pytest.raises(ApiError) as exc_info:
        await storefront.api.get("/cart")

    assert exc_info.value.status_code == 502
    assert exc_info.value.code == "HTTP_502"
    assert api_state.count("GET /cart") == 3


@pytest.mark.asyncio
async def test_client_errors_and_mutations_are_not_retried(storefront, api_state):
    api_state.fail("POST /cart/items", 500, "Internal server error")
    with pytest.raises(ApiError):
        await storefront.api.post("/cart/items", json={"productId": "p1", "quantity": 1})
    assert api_state.count("POST /cart/items") == 1

    with pytest.raises(ApiError):
        await storefront.api.get("/orders/missing")
    assert api_state.count("GET /orders/missing") == 1


@pytest.mark.asyncio
async def test_unauthorized_maps_to_auth_required(storefront, api_state):
    api_state.authenticated = False

    with pytest.raises(AuthRequiredError) as exc_info:
        await storefront.api.get("/cart")

    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Not authorized, please log in"


@pytest.mark.asyncio
async def test_transport_failure_becomes_network_error(test_settings):
    attempts = []

    def refuse(request):
        attempts.append(request.url.path)
        raise httpx.ConnectError("connection refused", request=request)

    async with StorefrontApi(settings=test_settings, transport=httpx.MockTransport(refuse)) as api:
        with pytest.raises(NetworkError) as exc_info:
            await api.get("/cart")
        with pytest.raises(NetworkError):
            await api.delete("/cart")

    assert exc_info.value.status_code is None
    assert exc_info.value.code == "NETWORK_ERROR"
    assert exc_info.value.message == FALLBACK_ERROR_MESSAGE
    assert attempts == ["/api/cart"] * 4


@pytest.mark.asyncio
async def test_session_cookies_and_empty_bodies(test_settings):
    seen = []

    def handler(request):
        seen.append(request.headers.get("cookie"))
        return httpx.Response(204)

    async with StorefrontApi(settings=test_settings, transport=httpx.MockTransport(handler),
                             cookies={"sid": "s3ss10n"}) as api:
        assert await api.delete("/cart") is None

    assert seen == ["sid=s3ss10n"]


@pytest.mark.asyncio
async def test_error_without_json_uses_fallback_message(test_settings):
    def handler(request):
        return httpx.Response(500, text="<html>oops</html>")

    async with StorefrontApi(settings=test_settings, transport=httpx.MockTransport(handler)) as api:
        with pytest.raises(ApiError) as exc_info:
            await api.post("/orders", json={})

    assert exc_info.value.message == FALLBACK_ERROR_MESSAGE
    assert exc_info.value.payload is None


@pytest.mark.parametrize("payload,expected", [
    ({"success": False, "message": "Out of stock"}, "Out of stock"),
    ({"error": {"code": "E1", "details": {"message": "Bad quantity"}}}, "Bad quantity"),
    ({"error": {"details": "Invalid id"}}, "Invalid id"),
    ({"detail": "Not Found"}, "Not Found"),
    ({"message": "   "}, None),
    (None, None),
    (["not", "a", "dict"], None),
])
def test_extract_error_message(payload, expected):
    assert extract_error_message(payload) == expected


def test_recoverable_exceptions():
    assert is_recoverable_exception(NetworkError())
    assert is_recoverable_exception(ApiError("down", status_code=503))
    assert not is_recoverable_exception(ApiError("nope", status_code=404))
    assert not is_recoverable_exception(AuthRequiredError("login", status_code=401))
    assert not is_recoverable_exception(ValueError("bug"))


@pytest.mark.asyncio
async def test_retry_transient_retries_then_succeeds():
    calls = []

    @retry_transient(attempts=3, base_delay=0.0)
    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise NetworkError()
        return "ok"

    assert await flaky() == "ok"
    assert len(calls) == 3
