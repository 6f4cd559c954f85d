"""Unwrapping of the response envelopes returned by the mentorship API.

The same logical endpoint answers with a bare value, ``{"data": ...}``,
``{"success": true, "data": ...}`` or, for list endpoints,
``{"requests": [...]}``. Each helper tries the known paths in a fixed order
and falls back to treating the value as already unwrapped.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from mentorlink.schemas.requests import ChannelResult, DirectRequest, MarkReadResult, RequestMetrics

logger = logging.getLogger(__name__)

_ENVELOPE_KEYS = ("data",)
_LIST_KEYS = ("requests", "items", "results")
_PROFILE_KEYS = ("requester", "target_user")


def unwrap_data(payload: Any) -> Any:
    """Peel ``data`` envelopes until a non-envelope value remains."""
    current = payload
    # At most two levels are seen in practice: {"success", "data": {"data": ...}}
    for _ in range(3):
        if not isinstance(current, Mapping):
            return current
        inner = None
        for key in _ENVELOPE_KEYS:
            if key in current and current[key] is not None:
                inner = current[key]
                break
        if inner is None:
            return current
        current = inner
    return current


def unwrap_list(payload: Any) -> list[Any]:
    """Return the list of records from a list endpoint response."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in _LIST_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
        inner = unwrap_data(payload)
        if inner is not payload:
            return unwrap_list(inner)
    return []


def unwrap_decrypted(payload: Any) -> str:
    """Return the plaintext from a decrypt response.

    Raises:
        ValueError: If the payload carries no decrypted value
    """
    for candidate in (payload, unwrap_data(payload)):
        if isinstance(candidate, Mapping) and "decryptedData" in candidate:
            value = candidate["decryptedData"]
            if value is None:
                return ""
            return value if isinstance(value, str) else str(value)
    if isinstance(payload, str):
        return payload
    raise ValueError("Decrypt response did not contain decryptedData")


def unwrap_encrypted(payload: Any) -> str:
    """Return the ciphertext from an encrypt response."""
    for candidate in (payload, unwrap_data(payload)):
        if isinstance(candidate, Mapping):
            for key in ("encryptedData", "encrypted"):
                if key in candidate and candidate[key]:
                    return str(candidate[key])
    if isinstance(payload, str):
        return payload
    raise ValueError("Encrypt response did not contain encryptedData")


def parse_channel_result(payload: Any) -> ChannelResult:
    """Validate a request-channel probe response."""
    data = unwrap_data(payload)
    if not isinstance(data, Mapping):
        raise ValueError(f"Unexpected channel probe payload: {type(data).__name__}")
    return ChannelResult.model_validate(data)


def parse_requests(payload: Any) -> list[DirectRequest]:
    """Validate a list of direct requests, dropping malformed records.

    A request whose embedded counterpart profile is malformed is kept without
    that profile rather than dropped.
    """
    requests: list[DirectRequest] = []
    for item in unwrap_list(payload):
        request = _parse_direct_request(item)
        if request is not None:
            requests.append(request)
    return requests


def _parse_direct_request(item: Any) -> DirectRequest | None:
    record_id = item.get("id") if isinstance(item, Mapping) else None
    try:
        return DirectRequest.model_validate(item)
    except ValidationError as exc:
        if not isinstance(item, Mapping) or not _has_embedded_profile(item):
            logger.warning("Dropping malformed direct request %s: %s", record_id, exc)
            return None
        first_error = exc

    try:
        request = DirectRequest.model_validate(_without_profiles(item))
    except ValidationError as exc:
        logger.warning("Dropping malformed direct request %s: %s", record_id, exc)
        return None

    logger.warning("Ignoring malformed counterpart profile on request %s: %s", record_id, first_error)
    return request


def _has_embedded_profile(item: Mapping[str, Any]) -> bool:
    context = item.get("requestContext")
    return (
        item.get("requester") is not None
        or item.get("target_user") is not None
        or (isinstance(context, Mapping) and context.get("otherUser") is not None)
    )


def _without_profiles(item: Mapping[str, Any]) -> dict[str, Any]:
    stripped = {key: value for key, value in item.items() if key not in _PROFILE_KEYS}
    context = item.get("requestContext")
    if isinstance(context, Mapping):
        stripped["requestContext"] = {key: value for key, value in context.items() if key != "otherUser"}
    return stripped


def parse_request(payload: Any) -> DirectRequest:
    """Validate a single direct request response."""
    data = unwrap_data(payload)
    if isinstance(data, Mapping) and isinstance(data.get("request"), Mapping):
        data = data["request"]
    return DirectRequest.model_validate(data)


def parse_mark_read(payload: Any) -> MarkReadResult:
    """Validate a mark-as-read response; a missing body counts as zero."""
    if payload is None:
        return MarkReadResult()
    if isinstance(payload, Mapping) and "count" in payload:
        return MarkReadResult.model_validate(payload)
    data = unwrap_data(payload)
    if isinstance(data, Mapping):
        return MarkReadResult.model_validate(data)
    return MarkReadResult()


def parse_metrics(payload: Any) -> RequestMetrics:
    """Validate a request metrics response."""
    data = unwrap_data(payload)
    if not isinstance(data, Mapping):
        return RequestMetrics()
    return RequestMetrics.model_validate(data)
