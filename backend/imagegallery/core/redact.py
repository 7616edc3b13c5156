from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "***"

_SENSITIVE_KEY_PARTS = (
    "account_key",
    "accountkey",
    "connection_string",
    "authorization",
    "password",
    "secret",
    "signature",
    "token",
)

_ACCOUNT_KEY_RE = re.compile(r"(?i)(AccountKey=)([^;\s]+)")
_SAS_IN_CONN_RE = re.compile(r"(?i)(SharedAccessSignature=)([^;\s]+)")
_SAS_SIG_RE = re.compile(r"(?i)([?&]sig=)([^&\s\"']+)")
_SHARED_KEY_RE = re.compile(r"(?i)\b(SharedKey(?:Lite)?\s+[^:\s]+:)([^\s,]+)")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+([^\s]+)")


def is_sensitive_key(key: str) -> bool:
    key_l = key.lower()
    return any(part in key_l for part in _SENSITIVE_KEY_PARTS)


def redact_connection_string(text: str) -> str:
    text = _ACCOUNT_KEY_RE.sub(r"\1" + REDACTED, text)
    return _SAS_IN_CONN_RE.sub(r"\1" + REDACTED, text)


def redact_text(text: str) -> str:
    text = redact_connection_string(text)
    text = _SAS_SIG_RE.sub(r"\1" + REDACTED, text)
    text = _SHARED_KEY_RE.sub(r"\1" + REDACTED, text)
    text = _BEARER_RE.sub("Bearer " + REDACTED, text)
    return text


def redact_any(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, bytes):
        try:
            return redact_text(value.decode("utf-8", errors="replace")).encode("utf-8")
        except Exception:
            return value
    if isinstance(value, Mapping):
        out: dict[Any, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and is_sensitive_key(k):
                out[k] = REDACTED
            else:
                out[k] = redact_any(v)
        return out
    if isinstance(value, (list, tuple)):
        seq = [redact_any(v) for v in value]
        return type(value)(seq) if isinstance(value, tuple) else seq
    return value
