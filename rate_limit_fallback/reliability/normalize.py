"""
Normalization of provider SDK exceptions into error documents.

The extractor and the pattern registry work on an opaque key-value document
with optional ``name``, ``message`` and a nested ``data`` mapping holding
``statusCode``, ``message``, ``responseBody`` and ``code``. Hosts usually
deliver that shape directly; exceptions raised by provider SDKs are converted
here so they can be classified the same way.
"""

import json
from collections.abc import Mapping
from typing import Any, Dict, Optional

import anthropic
import httpx
import openai


# SDK status errors by provider (checked in order)
PROVIDER_STATUS_ERRORS = (
    ("openai", openai.APIStatusError),
    ("anthropic", anthropic.APIStatusError),
)

PROVIDER_BASE_ERRORS = (
    ("openai", openai.APIError),
    ("anthropic", anthropic.APIError),
)


def to_error_document(error: Any) -> Optional[Dict[str, Any]]:
    """
    Convert an error-like value into an error document.

    Args:
        error: A mapping (returned as a shallow copy), an exception, or anything else

    Returns:
        The error document, or None for values that carry no error structure
    """
    if error is None:
        return None
    if isinstance(error, Mapping):
        return dict(error)
    if not isinstance(error, BaseException):
        return None

    provider = _provider_of(error)
    name = type(error).__name__
    if provider:
        name = f"{provider}.{name}"

    data: Dict[str, Any] = {}

    status_code = _get_status_code(error)
    if status_code is not None:
        data["statusCode"] = status_code

    message = getattr(error, "message", None)
    data["message"] = str(message) if message else _safe_str(error)

    body = _get_response_body(error)
    if body:
        data["responseBody"] = body

    code = _get_error_code(error)
    if code:
        data["code"] = code

    return {"name": name, "message": data["message"], "data": data}


def _provider_of(error: BaseException) -> Optional[str]:
    for provider, error_type in PROVIDER_BASE_ERRORS:
        if isinstance(error, error_type):
            return provider
    return None


def _get_status_code(error: BaseException) -> Optional[int]:
    for _, error_type in PROVIDER_STATUS_ERRORS:
        if isinstance(error, error_type):
            return error.status_code

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int) and not isinstance(status_code, bool):
        return status_code
    return None


def _get_response_body(error: BaseException) -> Optional[str]:
    body = getattr(error, "body", None)
    if body is not None:
        if isinstance(body, (dict, list)):
            return json.dumps(body)
        return str(body)

    if isinstance(error, httpx.HTTPStatusError):
        try:
            return error.response.text
        except httpx.ResponseNotRead:
            return None
    return None


def _get_error_code(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if isinstance(code, str) and code:
        return code

    # Anthropic nests the machine-readable type inside the body
    body = getattr(error, "body", None)
    if isinstance(body, Mapping):
        inner = body.get("error")
        if isinstance(inner, Mapping) and isinstance(inner.get("type"), str):
            return inner["type"]
        if isinstance(body.get("type"), str) and body.get("type") != "error":
            return body["type"]
    return None


def _safe_str(error: BaseException) -> str:
    try:
        return str(error)
    except Exception:
        return ""
