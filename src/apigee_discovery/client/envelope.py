"""
Decoding of listing responses.

The data API wraps listings as ``{status, message, code, error_code,
request_id, data: [...]}``; the management API answers with a bare array or
an object holding the array under a kind-specific key.
"""

from typing import Any

from apigee_discovery.exceptions import MalformedResponseError


def unwrap_envelope(payload: Any, data_attribute: str | None = "data", *, url: str | None = None) -> list[Any]:
    """
    Return the record array of one listing page.

    Args:
        payload: Decoded JSON body
        data_attribute: Key holding the records, or None for a bare array
        url: Request URL, for error messages

    Raises:
        MalformedResponseError: The payload reports an error or has no record array
    """
    if isinstance(payload, list) and data_attribute is None:
        return payload

    if not isinstance(payload, dict):
        raise MalformedResponseError(f"expected a JSON object, got {type(payload).__name__}", url=url)

    status = str(payload.get("status") or "").lower()
    error_code = payload.get("error_code")
    if status in ("error", "fail", "failure") or error_code:
        message = payload.get("message") or "no message"
        raise MalformedResponseError(
            f"listing reported an error (status={payload.get('status')!r}, error_code={error_code!r}): {message}",
            url=url,
        )

    if data_attribute is None:
        raise MalformedResponseError("expected a JSON array", url=url)

    records = payload.get(data_attribute)
    if records is None:
        # The data API omits ``data`` for an empty listing
        if "status" in payload or "code" in payload:
            return []
        raise MalformedResponseError(f"response has no '{data_attribute}' field", url=url)
    if not isinstance(records, list):
        raise MalformedResponseError(f"'{data_attribute}' is not an array", url=url)
    return records
