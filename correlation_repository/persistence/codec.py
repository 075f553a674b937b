"""
JSON encoding for the identity and error columns.

The stored format uses camelCase keys so rows stay readable by other
process engine components sharing the table.
"""

import json
from typing import Any, Dict, Optional

from correlation_repository.domain import CorrelationDecodeError, CorrelationError, Identity

_IDENTITY_KEYS = ("userId", "token")


def encode_identity(identity: Optional[Identity]) -> Optional[str]:
    if identity is None:
        return None

    payload: Dict[str, Any] = dict(identity.claims)
    if identity.user_id is not None:
        payload["userId"] = identity.user_id
    if identity.token is not None:
        payload["token"] = identity.token
    return json.dumps(payload)


def decode_identity(raw: Optional[str]) -> Optional[Identity]:
    if not raw:
        return None

    payload = _load_object("identity", raw)
    return Identity(
        user_id=payload.get("userId"),
        token=payload.get("token"),
        claims={k: v for k, v in payload.items() if k not in _IDENTITY_KEYS},
    )


def encode_error(error: Optional[CorrelationError]) -> Optional[str]:
    if error is None:
        return None

    payload: Dict[str, Any] = {"name": error.name, "message": error.message}
    if error.code is not None:
        payload["code"] = error.code
    if error.additional_information is not None:
        payload["additionalInformation"] = error.additional_information
    return json.dumps(payload, default=str)


def decode_error(raw: Optional[str]) -> Optional[CorrelationError]:
    if not raw:
        return None

    payload = _load_object("error", raw)
    return CorrelationError(
        name=payload.get("name", "Error"),
        message=payload.get("message", ""),
        code=payload.get("code"),
        additional_information=payload.get("additionalInformation"),
    )


def _load_object(column: str, raw: str) -> Dict[str, Any]:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise CorrelationDecodeError(column, raw, str(e)) from e

    if not isinstance(payload, dict):
        raise CorrelationDecodeError(column, raw, f"expected an object, got {type(payload).__name__}")
    return payload
