from typing import Any


def unwrap_envelope(payload: Any) -> Any:
    """Return the `data` member of a `{ success, message, data }` envelope."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload
