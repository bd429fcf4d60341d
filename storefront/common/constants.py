import contextvars
from typing import Optional

REQUEST_ID_HEADER = "X-Request-ID"

FALLBACK_ERROR_MESSAGE = "Something went wrong. Please try again."

# Context variable for the id of the request currently being sent
request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
