from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.core.pipeline import PipelineResponse
from azure.core.pipeline.transport import AioHttpTransport, AsyncHttpTransport
from azure.storage.blob import ContentSettings, PublicAccess
from azure.storage.blob.aio import BlobServiceClient, ContainerClient, ExponentialRetry, LinearRetry

from imagegallery.core.config import Settings
from imagegallery.core.logging import get_logger
from imagegallery.core.metrics import STORAGE_RETRIES_TOTAL, observe_storage_request
from imagegallery.core.request_id import CLIENT_REQUEST_ID_HEADER, RETURN_CLIENT_REQUEST_ID_HEADER
from imagegallery.storage.fault_injection import AsyncFaultInjectionTransport, build_throttle_policy

log = get_logger(__name__)

_ATTEMPTS_KEY = "imagegallery_attempts"


class StorageRequestError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
        client_request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.client_request_id = client_request_id

    @classmethod
    def from_azure(cls, exc: AzureError) -> "StorageRequestError":
        response = getattr(exc, "response", None)
        request = getattr(response, "request", None)
        headers = getattr(request, "headers", None) or {}
        error_code = getattr(exc, "error_code", None)
        return cls(
            exc.message or type(exc).__name__,
            status_code=getattr(exc, "status_code", None),
            error_code=str(error_code) if error_code else None,
            client_request_id=headers.get(CLIENT_REQUEST_ID_HEADER),
        )


class CappedExponentialRetry(ExponentialRetry):
    """Exponential storage retry whose backoff never exceeds ``max_backoff``."""

    def __init__(self, *, max_backoff: float, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.max_backoff = float(max_backoff)

    def get_backoff_time(self, settings: dict[str, Any]) -> float:
        backoff = super().get_backoff_time(settings)
        if self.max_backoff > 0:
            backoff = min(backoff, self.max_backoff)
        return backoff


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 3
    delay_s: float = 0.8
    max_delay_s: float = 60.0
    mode: str = "exponential"
    network_timeout_s: float = 100.0

    def build(self) -> LinearRetry | ExponentialRetry:
        # Jitter stays proportional to the delay so a zero delay never sleeps.
        jitter = round(float(self.delay_s) * 0.2, 3)
        if self.mode == "fixed":
            return LinearRetry(
                backoff=float(self.delay_s),
                retry_total=int(self.max_retries),
                random_jitter_range=jitter,
            )
        return CappedExponentialRetry(
            initial_backoff=float(self.delay_s),
            increment_base=2,
            retry_total=int(self.max_retries),
            random_jitter_range=jitter,
            max_backoff=float(self.max_delay_s),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.retry_max_retries,
            delay_s=settings.retry_delay_s,
            max_delay_s=settings.retry_max_delay_s,
            mode=settings.retry_mode,
            network_timeout_s=settings.retry_network_timeout_s,
        )


@dataclass(frozen=True, slots=True)
class TransferOptions:
    initial_transfer_size: int = 256 * 1024 * 1024
    max_transfer_size: int = 4 * 1024 * 1024
    max_concurrency: int = 4

    def client_kwargs(self) -> dict[str, int]:
        return {
            "max_single_put_size": int(self.initial_transfer_size),
            "max_block_size": max(1, int(self.max_transfer_size)),
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "TransferOptions":
        return cls(
            initial_transfer_size=settings.transfer_initial_size,
            max_transfer_size=settings.transfer_max_size,
            max_concurrency=settings.transfer_max_concurrency,
        )


@dataclass(frozen=True, slots=True)
class BlobRef:
    name: str
    url: str


def observe_storage_response(response: PipelineResponse) -> None:
    """Per-attempt hook: counts every storage response and every retried attempt."""
    http_response = response.http_response
    outcome = "ok" if http_response.status_code < 400 else "http_error"
    observe_storage_request(method=http_response.request.method, outcome=outcome)

    attempts = int(response.context.get(_ATTEMPTS_KEY, 0)) + 1
    response.context[_ATTEMPTS_KEY] = attempts
    if attempts > 1:
        STORAGE_RETRIES_TOTAL.inc()
        log.warning(
            "storage_retry method=%s attempt=%s status=%s client_request_id=%s",
            http_response.request.method,
            attempts,
            http_response.status_code,
            http_response.request.headers.get(CLIENT_REQUEST_ID_HEADER) or "",
        )


class BlobStorageClient:
    def __init__(self, service: BlobServiceClient, *, transfer: TransferOptions | None = None) -> None:
        self.service = service
        self.transfer = transfer or TransferOptions()

    async def __aenter__(self) -> "BlobStorageClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.service.close()

    def container(self, name: str) -> "BlobContainer":
        return BlobContainer(self.service.get_container_client(name), transfer=self.transfer)


class BlobContainer:
    def __init__(self, client: ContainerClient, *, transfer: TransferOptions) -> None:
        self.client = client
        self.transfer = transfer
        self.name = client.container_name
        self.url = client.url

    def blob(self, blob_name: str) -> BlobRef:
        return BlobRef(name=blob_name, url=self.client.get_blob_client(blob_name).url)

    async def create_if_not_exists(self) -> bool:
        try:
            await self.client.create_container()
        except ResourceExistsError:
            return False
        except AzureError as exc:
            raise StorageRequestError.from_azure(exc) from exc
        log.info("storage_container_created container=%s", self.name)
        return True

    async def set_public_access(self, level: str = PublicAccess.BLOB) -> None:
        try:
            await self.client.set_container_access_policy(signed_identifiers={}, public_access=level)
        except AzureError as exc:
            raise StorageRequestError.from_azure(exc) from exc

    async def delete_blob_if_exists(self, blob_name: str, *, include_snapshots: bool = True) -> bool:
        try:
            await self.client.delete_blob(blob_name, delete_snapshots="include" if include_snapshots else None)
        except ResourceNotFoundError:
            return False
        except AzureError as exc:
            raise StorageRequestError.from_azure(exc) from exc
        return True

    async def upload_blob(self, blob_name: str, data: bytes, *, content_type: str | None = None) -> BlobRef:
        content_settings = ContentSettings(content_type=content_type) if content_type else None
        try:
            blob_client = await self.client.upload_blob(
                blob_name,
                data,
                overwrite=True,
                content_settings=content_settings,
                max_concurrency=max(1, int(self.transfer.max_concurrency)),
            )
        except AzureError as exc:
            raise StorageRequestError.from_azure(exc) from exc
        if len(data) > int(self.transfer.initial_transfer_size):
            log.info("storage_blob_committed blob=%s size=%s", blob_name, len(data))
        return BlobRef(name=blob_name, url=blob_client.url)


def build_storage_transport(
    settings: Settings,
    *,
    transport: AsyncHttpTransport | None = None,
    rng: random.Random | None = None,
) -> AsyncHttpTransport:
    if transport is None:
        timeout = float(settings.retry_network_timeout_s)
        transport = AioHttpTransport(connection_timeout=min(10.0, timeout), read_timeout=timeout)
    if not settings.storage_fault_injection:
        return transport
    policy = build_throttle_policy(settings, rng=rng)
    log.info(
        "storage_fault_injection_enabled mode=%s rate=%s",
        settings.throttling_mode,
        settings.throttling_rate,
    )
    return AsyncFaultInjectionTransport(transport, policy)


def create_blob_client(
    settings: Settings,
    *,
    transport: AsyncHttpTransport | None = None,
    rng: random.Random | None = None,
) -> BlobStorageClient:
    transfer = TransferOptions.from_settings(settings)
    service = BlobServiceClient.from_connection_string(
        settings.storage_connection_string,
        transport=build_storage_transport(settings, transport=transport, rng=rng),
        retry_policy=RetryPolicy.from_settings(settings).build(),
        headers={RETURN_CLIENT_REQUEST_ID_HEADER: "true"},
        raw_response_hook=observe_storage_response,
        **transfer.client_kwargs(),
    )
    return BlobStorageClient(service, transfer=transfer)
