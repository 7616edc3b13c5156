from __future__ import annotations

from prometheus_client import Counter, Gauge

STORAGE_OUTCOMES: tuple[str, ...] = (
    "ok",
    "http_error",
)

UPLOAD_RESULTS: tuple[str, ...] = (
    "ok",
    "empty",
    "storage_error",
    "error",
)

STORAGE_REQUESTS_TOTAL = Counter(
    "image_gallery_storage_requests_total",
    "Storage HTTP requests by method and outcome.",
    ["method", "outcome"],
)

STORAGE_RETRIES_TOTAL = Counter(
    "image_gallery_storage_retries_total",
    "Storage HTTP requests retried by the client retry policy.",
)

FAULTS_INJECTED_TOTAL = Counter(
    "image_gallery_faults_injected_total",
    "Synthetic storage errors returned by the fault injection transport.",
    ["error_code"],
)

UPLOADS_TOTAL = Counter(
    "image_gallery_uploads_total",
    "Gallery uploads by result.",
    ["result"],
)

GALLERY_IMAGES_COUNT = Gauge(
    "image_gallery_images_count",
    "Current number of gallery images (from the database).",
)

METRICS_SCRAPE_ERRORS_TOTAL = Counter(
    "image_gallery_metrics_scrape_errors_total",
    "Total /metrics scrape errors while querying the database.",
)


def _init_labelsets() -> None:
    for method in ("GET", "PUT", "DELETE"):
        for outcome in STORAGE_OUTCOMES:
            STORAGE_REQUESTS_TOTAL.labels(method=method, outcome=outcome).inc(0)
    STORAGE_RETRIES_TOTAL.inc(0)
    FAULTS_INJECTED_TOTAL.labels(error_code="ServerBusy").inc(0)
    for result in UPLOAD_RESULTS:
        UPLOADS_TOTAL.labels(result=result).inc(0)
    GALLERY_IMAGES_COUNT.set(0)


_init_labelsets()


def observe_storage_request(*, method: str, outcome: str) -> None:
    outcome = (outcome or "").strip()
    if outcome not in STORAGE_OUTCOMES:
        outcome = "http_error"
    STORAGE_REQUESTS_TOTAL.labels(method=(method or "").upper(), outcome=outcome).inc()


def observe_fault_injected(*, error_code: str) -> None:
    FAULTS_INJECTED_TOTAL.labels(error_code=error_code).inc()


def observe_upload(*, result: str) -> None:
    result = (result or "").strip()
    if result not in UPLOAD_RESULTS:
        result = "error"
    UPLOADS_TOTAL.labels(result=result).inc()
