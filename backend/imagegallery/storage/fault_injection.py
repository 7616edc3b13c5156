"""azure-core transports that fake storage throttling for blob writes.

``FaultInjectionTransport`` (sync pipelines) and ``AsyncFaultInjectionTransport``
(async pipelines) decorate the real transport underneath a storage client.
Every outgoing blob ``PUT`` (container management calls excluded) is offered
to a throttle policy; when the policy fires, a ``503 ServerBusy`` response
shaped like the storage service's own error is returned and the network is
never touched. Everything else is forwarded unchanged, so with the shim
disabled the client code path is the production one.
"""

from __future__ import annotations

import random
import time
from collections.abc import AsyncIterator, Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import unquote, urlsplit

from azure.core.pipeline.transport import AsyncHttpResponse, AsyncHttpTransport, HttpResponse, HttpTransport
from azure.core.utils import case_insensitive_dict

from imagegallery.core.config import Settings
from imagegallery.core.logging import get_logger
from imagegallery.core.metrics import observe_fault_injected
from imagegallery.core.request_id import CLIENT_REQUEST_ID_HEADER, RETURN_CLIENT_REQUEST_ID_HEADER

log = get_logger(__name__)

ERROR_CODE_HEADER = "x-ms-error-code"

STORAGE_ERROR_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<Error>
  <Code>{code}</Code>
  <Message>{message}</Message>
</Error>
"""


@dataclass(frozen=True, slots=True)
class StorageError:
    error_code: str
    status_code: int
    user_message: str
    reason_phrase: str

    def render_body(self) -> str:
        return STORAGE_ERROR_TEMPLATE.format(code=self.error_code, message=self.user_message)


SERVER_BUSY = StorageError(
    error_code="ServerBusy",
    status_code=503,
    user_message="Operations per second is over the account limit.",
    reason_phrase="Service Unavailable",
)


class ThrottlePolicy(Protocol):
    def should_throttle(self) -> bool: ...


class RateThrottlePolicy:
    """Faults each eligible request independently with probability ``rate``."""

    def __init__(self, rate: float, *, rng: random.Random | None = None) -> None:
        rate_f = float(rate)
        if not 0.0 <= rate_f <= 1.0:
            raise ValueError("rate must be within [0, 1]")
        self.rate = rate_f
        self._rng = rng if rng is not None else random.Random()

    def should_throttle(self) -> bool:
        return self._rng.random() < self.rate


class WindowThrottlePolicy:
    """Alternates a healthy phase and a throttled phase.

    The cycle starts healthy when the policy is created. While throttled,
    eligible requests are faulted with probability ``rate``.
    """

    def __init__(
        self,
        *,
        available_interval_s: float,
        throttling_interval_s: float,
        rate: float = 1.0,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if available_interval_s < 0 or throttling_interval_s < 0:
            raise ValueError("intervals must be >= 0")
        self.available_interval_s = float(available_interval_s)
        self.throttling_interval_s = float(throttling_interval_s)
        self._rate = RateThrottlePolicy(rate, rng=rng)
        self._clock = clock
        self._origin = clock()

    def in_throttling_phase(self) -> bool:
        cycle = self.available_interval_s + self.throttling_interval_s
        if cycle <= 0 or self.throttling_interval_s <= 0:
            return False
        position = (self._clock() - self._origin) % cycle
        return position >= self.available_interval_s

    def should_throttle(self) -> bool:
        return self.in_throttling_phase() and self._rate.should_throttle()


def build_throttle_policy(settings: Settings, *, rng: random.Random | None = None) -> ThrottlePolicy:
    if rng is None:
        rng = random.Random(settings.throttling_seed) if settings.throttling_seed is not None else random.Random()
    if settings.throttling_mode == "window":
        return WindowThrottlePolicy(
            available_interval_s=settings.throttling_available_interval_s,
            throttling_interval_s=settings.throttling_interval_s,
            rate=settings.throttling_rate,
            rng=rng,
        )
    return RateThrottlePolicy(settings.throttling_rate, rng=rng)


def is_blob_put(request: Any) -> bool:
    if str(request.method).upper() != "PUT":
        return False
    query = unquote(urlsplit(str(request.url)).query)
    return "restype=container" not in query


def _wants_client_request_id(headers: Mapping[str, str]) -> bool:
    raw = headers.get(RETURN_CLIENT_REQUEST_ID_HEADER)
    return raw is not None and raw.strip().lower() == "true"


class _BufferedBody:
    """A response whose body is already in memory."""

    def _fill(
        self,
        status_code: int,
        headers: Mapping[str, str] | None,
        body: bytes,
        reason: str | None,
    ) -> None:
        self.status_code = int(status_code)
        self.headers = case_insensitive_dict(dict(headers or {}))
        self.reason = reason or ""
        self.content_type = self.headers.get("Content-Type")
        self._content = bytes(body)

    def body(self) -> bytes:
        return self._content


class StorageResponse(_BufferedBody, HttpResponse):
    """Pre-built response for sync pipelines."""

    def __init__(
        self,
        request: Any,
        status_code: int,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        reason: str | None = None,
    ) -> None:
        super().__init__(request, None)
        self._fill(status_code, headers, body, reason)

    def stream_download(self, pipeline: Any, **kwargs: Any) -> Iterator[bytes]:
        return iter([self._content])


class AsyncStorageResponse(_BufferedBody, AsyncHttpResponse):
    """Pre-built response for async pipelines."""

    def __init__(
        self,
        request: Any,
        status_code: int,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        reason: str | None = None,
    ) -> None:
        super().__init__(request, None)
        self._fill(status_code, headers, body, reason)

    async def load_body(self) -> None:
        return None

    def stream_download(self, pipeline: Any, **kwargs: Any) -> AsyncIterator[bytes]:
        async def _chunks() -> AsyncIterator[bytes]:
            yield self._content

        return _chunks()

    async def __aexit__(self, *exc: Any) -> None:
        return None


def error_response_headers(request: Any, error: StorageError = SERVER_BUSY) -> dict[str, str]:
    headers = {
        ERROR_CODE_HEADER: error.error_code,
        "Content-Type": "application/xml",
    }
    request_headers = case_insensitive_dict(dict(request.headers))
    client_request_id = request_headers.get(CLIENT_REQUEST_ID_HEADER)
    if client_request_id is not None and _wants_client_request_id(request_headers):
        headers[RETURN_CLIENT_REQUEST_ID_HEADER] = client_request_id
    return headers


def build_error_response(request: Any, error: StorageError = SERVER_BUSY) -> StorageResponse:
    return StorageResponse(
        request,
        error.status_code,
        headers=error_response_headers(request, error),
        body=error.render_body().encode("utf-8"),
        reason=error.reason_phrase,
    )


def build_async_error_response(request: Any, error: StorageError = SERVER_BUSY) -> AsyncStorageResponse:
    return AsyncStorageResponse(
        request,
        error.status_code,
        headers=error_response_headers(request, error),
        body=error.render_body().encode("utf-8"),
        reason=error.reason_phrase,
    )


class _FaultInjector:
    policy: ThrottlePolicy
    error: StorageError

    def intercept_request(self, request: Any) -> bool:
        if not is_blob_put(request) or not self.policy.should_throttle():
            return False

        log.info(
            "throttling_request method=%s path=%s client_request_id=%s",
            request.method,
            urlsplit(str(request.url)).path,
            request.headers.get(CLIENT_REQUEST_ID_HEADER) or "",
        )
        observe_fault_injected(error_code=self.error.error_code)
        return True


class FaultInjectionTransport(_FaultInjector, HttpTransport):
    """Decorates a sync azure-core transport."""

    def __init__(self, transport: HttpTransport, policy: ThrottlePolicy, *, error: StorageError = SERVER_BUSY) -> None:
        self.transport = transport
        self.policy = policy
        self.error = error

    def send(self, request: Any, **kwargs: Any) -> HttpResponse:
        if self.intercept_request(request):
            return build_error_response(request, self.error)
        return self.transport.send(request, **kwargs)

    def open(self) -> None:
        self.transport.open()

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "FaultInjectionTransport":
        self.transport.__enter__()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.transport.__exit__(*exc)


class AsyncFaultInjectionTransport(_FaultInjector, AsyncHttpTransport):
    """Decorates an async azure-core transport; interception itself never awaits."""

    def __init__(
        self,
        transport: AsyncHttpTransport,
        policy: ThrottlePolicy,
        *,
        error: StorageError = SERVER_BUSY,
    ) -> None:
        self.transport = transport
        self.policy = policy
        self.error = error

    async def send(self, request: Any, **kwargs: Any) -> AsyncHttpResponse:
        if self.intercept_request(request):
            return build_async_error_response(request, self.error)
        return await self.transport.send(request, **kwargs)

    async def open(self) -> None:
        await self.transport.open()

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "AsyncFaultInjectionTransport":
        await self.transport.__aenter__()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.transport.__aexit__(*exc)
