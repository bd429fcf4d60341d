from typing import Any, Dict, Optional

import httpx
from uuid6 import uuid7

from storefront.api.constants import logger
from storefront.common.constants import REQUEST_ID_HEADER, request_id_ctx
from storefront.common.custom_exceptions import NetworkError, error_from_response
from storefront.common.retries import retry_transient
from storefront.common.utils import unwrap_envelope
from storefront.config.settings import Settings, client_settings


class StorefrontApi:
    """
    Thin async client for the storefront JSON API.

    Every response is a `{ success, message, data }` envelope; callers get the
    unwrapped `data`. Non-2xx responses raise `ApiError` (`AuthRequiredError`
    for 401), transport failures raise `NetworkError`. Session cookies set by
    the server live in the underlying httpx cookie jar and ride along on every
    request. GETs retry transient failures, mutations never do.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        settings: Settings = client_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cookies: Optional[Dict[str, str]] = None,
    ):
        self.settings = settings
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_URL,
            timeout=settings.REQUEST_TIMEOUT,
            transport=transport,
            cookies=cookies,
            headers={"Accept": "application/json"},
        )
        self._send_read = retry_transient(
            attempts=max(1, settings.READ_RETRY_ATTEMPTS),
            base_delay=settings.READ_RETRY_BASE_DELAY,
        )(self._send)

    @property
    def cookies(self) -> httpx.Cookies:
        return self._client.cookies

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "StorefrontApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def request(self, method: str, path: str, *, json: Any = None,
                      params: Optional[Dict[str, Any]] = None) -> Any:
        method = method.upper()
        if method == "GET":
            return await self._send_read(method, path, json=json, params=params)
        return await self._send(method, path, json=json, params=params)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def _send(self, method: str, path: str, *, json: Any = None,
                    params: Optional[Dict[str, Any]] = None) -> Any:
        req_id = str(uuid7())
        token = request_id_ctx.set(req_id)
        try:
            try:
                response = await self._client.request(
                    method, path, json=json, params=params, headers={REQUEST_ID_HEADER: req_id},
                )
            except httpx.TransportError as exc:
                logger.warning("api.transport_error", extra={"method": method, "path": path, "error": str(exc)})
                raise NetworkError(cause=exc) from exc

            if response.is_error:
                err = error_from_response(response)
                logger.warning(
                    "api.request_failed",
                    extra={"method": method, "path": path, "status_code": response.status_code},
                )
                raise err

            logger.debug("api.request_ok", extra={"method": method, "path": path, "status_code": response.status_code})
            if not response.content:
                return None
            try:
                payload = response.json()
            except ValueError:
                return None
            return unwrap_envelope(payload)
        finally:
            request_id_ctx.reset(token)
