"""Drive uploads through the app with storage throttling switched on.

The storage network is an in-memory fake, so the report shows how the retry
policy copes with the configured throttling rate and nothing else.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import platform
import statistics
import sys
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from azure.core.pipeline.transport import AsyncHttpTransport
from prometheus_client import REGISTRY

REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from imagegallery.db.session import create_schema  # noqa: E402
from imagegallery.main import create_app  # noqa: E402
from imagegallery.storage.fault_injection import AsyncStorageResponse  # noqa: E402


@dataclass(frozen=True, slots=True)
class BenchResult:
    total: int
    ok: int
    storage_error: int
    other_error: int
    durations_s: list[float]


def _p(sorted_values: list[float], p: float) -> float:
    if not sorted_values:
        return 0.0
    p = max(0.0, min(float(p), 100.0))
    k = (len(sorted_values) - 1) * (p / 100.0)
    f = int(k)
    c = min(f + 1, len(sorted_values) - 1)
    if f == c:
        return sorted_values[f]
    return sorted_values[f] * (c - k) + sorted_values[c] * (k - f)


class _FakeStorage(AsyncHttpTransport):
    """Answers every storage call in memory."""

    async def send(self, request, **kwargs):  # type: ignore[no-untyped-def]
        if request.method == "PUT" and "comp=acl" in request.url:
            return AsyncStorageResponse(request, 200)
        if request.method == "PUT":
            return AsyncStorageResponse(request, 201, headers={"ETag": '"0x1"'})
        if request.method == "DELETE":
            return AsyncStorageResponse(request, 404, headers={"x-ms-error-code": "BlobNotFound"})
        return AsyncStorageResponse(request, 200)

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def __aexit__(self, *exc: Any) -> None:
        return None


def _counter(name: str, labels: dict[str, str] | None = None) -> float:
    return float(REGISTRY.get_sample_value(name, labels or {}) or 0.0)


async def _run_bench(*, app, total_requests: int, concurrency: int, payload_bytes: int) -> BenchResult:
    total_i = max(1, int(total_requests))
    semaphore = asyncio.Semaphore(max(1, int(concurrency)))
    payload = b"\x89PNG" + b"\x00" * max(0, int(payload_bytes) - 4)
    durations_s: list[float] = []
    ok = 0
    storage_error = 0
    other_error = 0

    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://bench.local",
        timeout=httpx.Timeout(60.0, connect=10.0),
    )

    async def one(i: int) -> None:
        nonlocal ok, storage_error, other_error
        async with semaphore:
            started = time.perf_counter()
            try:
                resp = await client.post(
                    "/upload",
                    data={"title": f"bench {i}", "tags": "bench, load"},
                    files={"file": (f"bench_{i}.png", payload, "image/png")},
                )
                if resp.status_code == 303:
                    ok += 1
                elif resp.status_code == 500:
                    storage_error += 1
                else:
                    other_error += 1
            except httpx.HTTPError:
                other_error += 1
            finally:
                durations_s.append(time.perf_counter() - started)

    try:
        await asyncio.gather(*(one(i) for i in range(total_i)))
    finally:
        await client.aclose()

    return BenchResult(
        total=total_i,
        ok=ok,
        storage_error=storage_error,
        other_error=other_error,
        durations_s=durations_s,
    )


def _build_report(*, args, result: BenchResult, elapsed_s: float) -> dict[str, Any]:
    ds = sorted(result.durations_s)
    return {
        "created_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "throttling": {
            "mode": args.mode,
            "rate": args.rate,
            "seed": args.seed,
            "faults_injected": _counter("image_gallery_faults_injected_total", {"error_code": "ServerBusy"}),
            "retries": _counter("image_gallery_storage_retries_total"),
        },
        "uploads": {
            "total": result.total,
            "concurrency": args.concurrency,
            "ok": result.ok,
            "storage_error": result.storage_error,
            "other_error": result.other_error,
        },
        "latency_s": {
            "p50": _p(ds, 50.0),
            "p90": _p(ds, 90.0),
            "p99": _p(ds, 99.0),
            "max": ds[-1] if ds else 0.0,
            "mean": statistics.fmean(ds) if ds else 0.0,
        },
        "throughput": {
            "elapsed_s": float(elapsed_s),
            "rps": float(result.total / elapsed_s) if elapsed_s > 0 else 0.0,
        },
        "env": {
            "python": sys.version.split()[0],
            "platform": platform.platform(),
        },
    }


async def main_async(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="In-process upload load test with storage throttling enabled.")
    parser.add_argument("--requests", type=int, default=200)
    parser.add_argument("--concurrency", type=int, default=20)
    parser.add_argument("--payload-bytes", type=int, default=64 * 1024)
    parser.add_argument("--mode", choices=["rate", "window"], default="rate")
    parser.add_argument("--rate", type=float, default=0.5)
    parser.add_argument("--seed", type=int, default=1)
    parser.add_argument("--retry-delay", type=str, default="10ms")
    parser.add_argument("--retry-mode", choices=["fixed", "exponential"], default="fixed")
    parser.add_argument("--output", type=str, default="")
    args = parser.parse_args(argv)

    with tempfile.TemporaryDirectory(prefix="image_gallery_bench_") as td:
        os.environ["APP_ENV"] = "dev"
        os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + (Path(td) / "bench.db").as_posix()
        os.environ["STORAGE_FAULT_INJECTION"] = "1"
        os.environ["THROTTLING_MODE"] = args.mode
        os.environ["THROTTLING_RATE"] = str(args.rate)
        os.environ["THROTTLING_SEED"] = str(args.seed)
        os.environ["RETRY_DELAY"] = args.retry_delay
        os.environ["RETRY_MODE"] = args.retry_mode

        app = create_app(storage_transport=_FakeStorage())
        try:
            logging.getLogger("imagegallery").setLevel(logging.WARNING)
            logging.getLogger("azure").setLevel(logging.WARNING)
            await create_schema(app.state.engine)

            started = time.perf_counter()
            result = await _run_bench(
                app=app,
                total_requests=args.requests,
                concurrency=args.concurrency,
                payload_bytes=args.payload_bytes,
            )
            report = _build_report(args=args, result=result, elapsed_s=time.perf_counter() - started)

            out_path = (args.output or "").strip()
            if out_path:
                out = Path(out_path)
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_text(json.dumps(report, indent=2) + "\n", encoding="utf-8")
                print(f"[bench_upload_throttling] wrote report: {out}")
            else:
                print(json.dumps(report, indent=2))
        finally:
            await app.state.blob_client.aclose()
            await app.state.engine.dispose()

    return 0


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(main_async(argv))


if __name__ == "__main__":
    raise SystemExit(main())
