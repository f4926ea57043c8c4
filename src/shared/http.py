import json

import httpx


def error_detail(exc: httpx.HTTPError) -> object:
    """Richest description of a failed call.

    Prefers the JSON error body, then the raw text body, then the transport
    message.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "details" in body:
            return body["details"]
        if body:
            return body
        if response.text:
            return response.text
    return str(exc) or type(exc).__name__


def detail_text(detail: object) -> str:
    if isinstance(detail, str):
        return detail
    return json.dumps(detail, ensure_ascii=False, default=str)
