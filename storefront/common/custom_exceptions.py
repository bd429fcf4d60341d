from typing import Any, Dict, Optional

import httpx

from storefront.common.constants import FALLBACK_ERROR_MESSAGE


class StorefrontError(Exception):
    """Base class for every error raised by the storefront client."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ApiError(StorefrontError):
    """Non-2xx response (or transport failure) from the storefront API."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None,
                 payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code or (f"HTTP_{status_code}" if status_code else "NETWORK_ERROR")
        self.payload = payload

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code!r}, message={self.message!r})"


class AuthRequiredError(ApiError):
    """HTTP 401. Routed to a login prompt instead of a plain error banner."""


class NetworkError(ApiError):
    """The request never produced a response (connect error, timeout, ...)."""

    def __init__(self, message: str = FALLBACK_ERROR_MESSAGE, cause: Optional[BaseException] = None):
        super().__init__(message, status_code=None, code="NETWORK_ERROR")
        self.cause = cause


class StorefrontValidationError(StorefrontError):
    """Local pre-flight rejection. Raised before any cache patch or network call."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.field_errors: Dict[str, str] = dict(field_errors or {})


class CartValidationError(StorefrontValidationError):
    pass


class CheckoutValidationError(StorefrontValidationError):
    pass


class OrderStateError(StorefrontValidationError):
    """The cached order is known to forbid the requested change."""


class PaymentConfigError(StorefrontError):
    """Payment provider is not configured; checkout must show a configuration error state."""


class TransactionClosedError(StorefrontError):
    pass


def extract_error_message(payload: Any) -> Optional[str]:
    """Pull a human message out of an error body, whichever envelope the server used."""
    if not isinstance(payload, dict):
        return None
    message = payload.get("message")
    if isinstance(message, str) and message.strip():
        return message
    error = payload.get("error")
    if isinstance(error, dict):
        details = error.get("details")
        if isinstance(details, dict) and isinstance(details.get("message"), str):
            return details["message"]
        if isinstance(details, str) and details.strip():
            return details
    detail = payload.get("detail")
    if isinstance(detail, str) and detail.strip():
        return detail
    return None


def error_from_response(response: httpx.Response) -> ApiError:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    message = extract_error_message(payload) or FALLBACK_ERROR_MESSAGE
    code = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        code = payload["error"].get("code")

    if response.status_code == httpx.codes.UNAUTHORIZED:
        return AuthRequiredError(message, status_code=response.status_code, code=code, payload=payload)
    return ApiError(message, status_code=response.status_code, code=code, payload=payload)
