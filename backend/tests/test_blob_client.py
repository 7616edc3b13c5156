from __future__ import annotations

import asyncio
import random
from urllib.parse import parse_qsl, urlsplit

import pytest
from azure.core.exceptions import ServiceRequestError
from azure.core.pipeline.transport import AsyncHttpTransport
from azure.storage.blob.aio import LinearRetry
from prometheus_client import REGISTRY

from imagegallery.core.config import load_settings
from imagegallery.storage.blob_client import (
    BlobStorageClient,
    CappedExponentialRetry,
    RetryPolicy,
    StorageRequestError,
    TransferOptions,
    create_blob_client,
)
from imagegallery.storage.fault_injection import AsyncStorageResponse

DEV_BLOB_ENDPOINT = "http://127.0.0.1:10000/devstoreaccount1"


def _params(request) -> dict[str, str]:  # type: ignore[no-untyped-def]
    return dict(parse_qsl(urlsplit(request.url).query))


def _error(status: int, code: str) -> tuple[int, dict[str, str], bytes]:
    body = f"<?xml version='1.0'?><Error><Code>{code}</Code><Message>{code}</Message></Error>".encode("utf-8")
    return status, {"x-ms-error-code": code, "Content-Type": "application/xml"}, body


class _FakeStorage(AsyncHttpTransport):
    """Records requests and answers from a queue of canned replies (201 when empty)."""

    def __init__(self, replies: list[tuple[int, dict[str, str], bytes]] | None = None) -> None:
        self.requests: list = []
        self._replies = list(replies or [])

    async def send(self, request, **kwargs):  # type: ignore[no-untyped-def]
        self.requests.append(request)
        if self._replies:
            status, headers, body = self._replies.pop(0)
            return AsyncStorageResponse(request, status, headers=headers, body=body)
        return AsyncStorageResponse(request, 201, headers={"ETag": '"0x8D"'})

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def __aexit__(self, *exc) -> None:  # type: ignore[no-untyped-def]
        return None


def _client(storage: AsyncHttpTransport, **env: str) -> BlobStorageClient:
    settings = load_settings({"RETRY_MODE": "fixed", "RETRY_DELAY": "0", **env})
    return create_blob_client(settings, transport=storage, rng=random.Random(1))


def _retries() -> float:
    return float(REGISTRY.get_sample_value("image_gallery_storage_retries_total") or 0.0)


def test_blob_ref_url_is_quoted() -> None:
    client = _client(_FakeStorage())
    blob = client.container("images").blob("my photo.png")
    assert blob.name == "my photo.png"
    assert blob.url == f"{DEV_BLOB_ENDPOINT}/images/my%20photo.png"


def test_create_container_reports_created_or_existing() -> None:
    storage = _FakeStorage([(201, {}, b""), _error(409, "ContainerAlreadyExists")])

    async def _run() -> tuple[bool, bool]:
        async with _client(storage) as client:
            container = client.container("images")
            return await container.create_if_not_exists(), await container.create_if_not_exists()

    assert asyncio.run(_run()) == (True, False)
    assert all(_params(r)["restype"] == "container" for r in storage.requests)


def test_set_public_access_sends_acl_request() -> None:
    storage = _FakeStorage([(200, {}, b"")])

    async def _run() -> None:
        async with _client(storage) as client:
            await client.container("images").set_public_access("blob")

    asyncio.run(_run())

    (request,) = storage.requests
    assert _params(request)["comp"] == "acl"
    assert request.headers["x-ms-blob-public-access"] == "blob"


def test_delete_blob_if_exists() -> None:
    storage = _FakeStorage([(202, {}, b""), _error(404, "BlobNotFound")])

    async def _run() -> tuple[bool, bool]:
        async with _client(storage) as client:
            container = client.container("images")
            return await container.delete_blob_if_exists("a.png"), await container.delete_blob_if_exists("a.png")

    assert asyncio.run(_run()) == (True, False)
    assert [r.method for r in storage.requests] == ["DELETE", "DELETE"]
    assert storage.requests[0].headers["x-ms-delete-snapshots"] == "include"


def test_small_upload_is_a_single_put() -> None:
    storage = _FakeStorage()

    async def _run() -> str:
        async with _client(storage) as client:
            blob = await client.container("images").upload_blob("cat.png", b"img", content_type="image/png")
            return blob.url

    assert asyncio.run(_run()) == f"{DEV_BLOB_ENDPOINT}/images/cat.png"
    (request,) = storage.requests
    assert request.method == "PUT"
    assert _params(request) == {}
    assert request.headers["x-ms-blob-content-type"] == "image/png"


def test_large_upload_is_staged_in_blocks_and_committed() -> None:
    storage = _FakeStorage()
    data = b"0123456789"

    async def _run() -> str:
        async with _client(
            storage,
            TRANSFER_INITIAL_SIZE="4",
            TRANSFER_MAX_SIZE="4",
            TRANSFER_MAX_CONCURRENCY="2",
        ) as client:
            blob = await client.container("images").upload_blob("big.bin", data)
            return blob.url

    assert asyncio.run(_run()) == f"{DEV_BLOB_ENDPOINT}/images/big.bin"

    staged = [r for r in storage.requests if _params(r).get("comp") == "block"]
    assert len(staged) == 3
    assert len({_params(r)["blockid"] for r in staged}) == 3
    assert _params(storage.requests[-1])["comp"] == "blocklist"


def test_retryable_status_is_retried_with_same_client_request_id() -> None:
    storage = _FakeStorage([_error(503, "ServerBusy"), _error(503, "ServerBusy")])
    before = _retries()

    async def _run() -> None:
        async with _client(storage) as client:
            await client.container("images").upload_blob("cat.png", b"img")

    asyncio.run(_run())

    assert len(storage.requests) == 3
    assert len({r.headers["x-ms-client-request-id"] for r in storage.requests}) == 1
    assert _retries() - before == 2


def test_exhausted_retries_raise_storage_error() -> None:
    storage = _FakeStorage([_error(503, "ServerBusy"), _error(503, "ServerBusy")])

    async def _run() -> None:
        async with _client(storage, RETRY_MAX_RETRIES="1") as client:
            await client.container("images").upload_blob("cat.png", b"img")

    with pytest.raises(StorageRequestError) as excinfo:
        asyncio.run(_run())
    assert excinfo.value.status_code == 503
    assert excinfo.value.error_code == "ServerBusy"
    assert excinfo.value.client_request_id == storage.requests[0].headers["x-ms-client-request-id"]
    assert len(storage.requests) == 2


def test_transport_errors_are_retried_then_surface() -> None:
    class _Down(_FakeStorage):
        async def send(self, request, **kwargs):  # type: ignore[no-untyped-def]
            self.requests.append(request)
            raise ServiceRequestError("connection refused")

    storage = _Down()

    async def _run() -> None:
        async with _client(storage, RETRY_MAX_RETRIES="2") as client:
            await client.container("images").create_if_not_exists()

    with pytest.raises(StorageRequestError) as excinfo:
        asyncio.run(_run())
    assert excinfo.value.status_code is None
    assert len(storage.requests) == 3


def test_retry_policy_maps_onto_storage_retry_classes() -> None:
    fixed = RetryPolicy(max_retries=5, delay_s=0.8, mode="fixed").build()
    assert isinstance(fixed, LinearRetry)
    assert fixed.total_retries == 5
    assert 0.64 <= fixed.get_backoff_time({"count": 3}) <= 0.96

    exponential = RetryPolicy(max_retries=4, delay_s=0.8, max_delay_s=60.0).build()
    assert isinstance(exponential, CappedExponentialRetry)
    assert exponential.total_retries == 4
    assert exponential.get_backoff_time({"count": 10}) == 60.0

    assert RetryPolicy(delay_s=0.0, mode="fixed").build().get_backoff_time({"count": 1}) == 0.0


def test_transfer_options_map_onto_client_settings() -> None:
    transfer = TransferOptions(initial_transfer_size=1024, max_transfer_size=256, max_concurrency=3)
    assert transfer.client_kwargs() == {"max_single_put_size": 1024, "max_block_size": 256}


def test_create_blob_client_wraps_transport_when_fault_injection_enabled() -> None:
    storage = _FakeStorage()
    client = _client(storage, STORAGE_FAULT_INJECTION="1", THROTTLING_RATE="1", RETRY_MAX_RETRIES="0")

    async def _run() -> None:
        async with client:
            assert await client.container("images").create_if_not_exists() is True
            await client.container("images").upload_blob("cat.png", b"img")

    with pytest.raises(StorageRequestError) as excinfo:
        asyncio.run(_run())
    assert excinfo.value.status_code == 503
    assert excinfo.value.error_code == "ServerBusy"
    # Only the container call reached the network.
    assert len(storage.requests) == 1
