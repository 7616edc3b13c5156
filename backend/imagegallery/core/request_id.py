"""Correlation ids.

``X-Request-Id`` ties a page or API response to its log lines. Storage calls
carry their own ``x-ms-client-request-id``, set per operation by the storage
client and echoed back by the throttling shim when asked to.
"""

from __future__ import annotations

import secrets

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-Id"

CLIENT_REQUEST_ID_HEADER = "x-ms-client-request-id"
RETURN_CLIENT_REQUEST_ID_HEADER = "x-ms-return-client-request-id"

MAX_REQUEST_ID_LENGTH = 128


def new_request_id() -> str:
    return "req_" + secrets.token_hex(8)


def _usable(value: str) -> bool:
    return 0 < len(value) <= MAX_REQUEST_ID_LENGTH and value.isascii() and value.isprintable()


def request_id_for(request: Request) -> str:
    """The id bound to this request, else the caller's header if usable, else a new one."""
    bound = getattr(request.state, "request_id", None)
    if bound:
        return str(bound)
    inbound = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    return inbound if _usable(inbound) else new_request_id()


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = request_id_for(request)
        request.state.request_id = rid
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
