from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    EMPTY_UPLOAD = "EMPTY_UPLOAD"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


UNKNOWN_REQUEST_ID = "req_unknown"

_DEFAULT_MESSAGE_BY_CODE: dict[ErrorCode, str] = {
    ErrorCode.BAD_REQUEST: "The request could not be processed.",
    ErrorCode.NOT_FOUND: "The requested image does not exist.",
    ErrorCode.EMPTY_UPLOAD: "Choose a non-empty image file to upload.",
    ErrorCode.STORAGE_ERROR: "Image storage is unavailable. Try again later.",
    ErrorCode.INTERNAL_ERROR: "Something went wrong on our side.",
}


def default_message(code: ErrorCode) -> str:
    return _DEFAULT_MESSAGE_BY_CODE.get(code, "Request failed.")


def normalize_error_message(*, code: ErrorCode, message: str | None) -> str:
    msg = str(message or "").strip()
    return msg if msg else default_message(code)


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    code: ErrorCode
    message: str
    status_code: int = 400
    details: dict[str, Any] | None = None


def _coerce_request_id(request_id: str | None) -> str:
    request_id = (request_id or "").strip()
    return request_id if request_id else UNKNOWN_REQUEST_ID


def request_id_from_request(request: Any | None) -> str | None:
    if request is None:
        return None
    request_id = getattr(getattr(request, "state", None), "request_id", None)
    if request_id:
        return str(request_id)
    header = request.headers.get("X-Request-Id")
    return header.strip() if header else None


def error_body(
    *,
    code: ErrorCode,
    message: str | None,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "ok": False,
        "code": code.value,
        "message": normalize_error_message(code=code, message=message),
        "request_id": _coerce_request_id(request_id),
        "details": details or {},
    }


def json_error_response(
    *,
    code: ErrorCode,
    message: str | None,
    status_code: int,
    request: Any | None = None,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Any:
    if request_id is None:
        request_id = request_id_from_request(request)
    from fastapi.responses import JSONResponse

    return JSONResponse(
        status_code=status_code,
        content=error_body(code=code, message=message, request_id=request_id, details=details),
    )


def wants_json(request: Any) -> bool:
    path = str(getattr(getattr(request, "url", None), "path", "") or "")
    if path in {"/healthz", "/metrics"}:
        return True
    accept = str(request.headers.get("accept") or "").lower()
    return "application/json" in accept and "text/html" not in accept
