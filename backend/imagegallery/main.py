from __future__ import annotations

from azure.core.pipeline.transport import AsyncHttpTransport
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from imagegallery.api.gallery import router as gallery_router
from imagegallery.api.healthz import router as healthz_router
from imagegallery.api.home import router as home_router
from imagegallery.api.metrics import router as metrics_router
from imagegallery.api.upload import router as upload_router
from imagegallery.core.config import load_settings
from imagegallery.core.errors import ApiError, ErrorCode, json_error_response, wants_json
from imagegallery.core.logging import configure_logging, get_logger
from imagegallery.core.request_id import RequestIdMiddleware
from imagegallery.core.time import local_now
from imagegallery.db.engine import create_engine
from imagegallery.db.seed import seed_demo_images
from imagegallery.db.session import create_schema, create_sessionmaker
from imagegallery.services.images import ImageService
from imagegallery.storage.blob_client import create_blob_client
from imagegallery.web.templates import render_error

log = get_logger(__name__)

_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.BAD_REQUEST,
    404: ErrorCode.NOT_FOUND,
}


def _error_response(request: Request, *, code: ErrorCode, message: str | None, status_code: int, details=None):  # type: ignore[no-untyped-def]
    if wants_json(request):
        return json_error_response(
            code=code,
            message=message,
            status_code=status_code,
            request=request,
            details=details,
        )
    return render_error(request, code=code, message=message, status_code=status_code)


def create_app(*, storage_transport: AsyncHttpTransport | None = None) -> FastAPI:
    configure_logging()
    settings = load_settings()

    app = FastAPI(title="image-gallery", docs_url=None, redoc_url=None)

    @app.exception_handler(ApiError)
    async def _api_error_handler(request: Request, exc: ApiError):  # type: ignore[no-redef]
        if exc.status_code >= 500:
            log.error("request_failed path=%s code=%s", request.url.path, exc.code.value)
        return _error_response(
            request,
            code=exc.code,
            message=exc.message,
            status_code=exc.status_code,
            details=exc.details,
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore[no-redef]
        fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
        return _error_response(
            request,
            code=ErrorCode.BAD_REQUEST,
            message="Invalid request: " + ", ".join(fields) if fields else "Invalid request",
            status_code=400,
            details={"fields": fields},
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[no-redef]
        status_code = int(exc.status_code)
        code = _STATUS_CODES.get(status_code, ErrorCode.BAD_REQUEST if status_code < 500 else ErrorCode.INTERNAL_ERROR)
        message = "Page not found." if status_code == 404 else str(exc.detail or "")
        return _error_response(request, code=code, message=message, status_code=status_code)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[no-redef]
        log.exception("unhandled_exception path=%s", request.url.path)
        return _error_response(
            request,
            code=ErrorCode.INTERNAL_ERROR,
            message=None,
            status_code=500,
            details={"error_type": type(exc).__name__},
        )

    app.add_middleware(RequestIdMiddleware)

    engine = create_engine(settings.database_url)
    app.state.engine = engine
    app.state.settings = settings
    app.state.image_service = ImageService(engine)
    app.state.blob_client = create_blob_client(settings, transport=storage_transport)

    @app.on_event("startup")
    async def _startup() -> None:  # type: ignore[no-redef]
        if settings.db_auto_migrate:
            await create_schema(engine)
        if settings.db_seed_demo:
            Session = create_sessionmaker(engine)
            async with Session() as session:
                await seed_demo_images(session, now=local_now())
        log.info(
            "app_started env=%s container=%s fault_injection=%s",
            settings.app_env,
            settings.storage_container,
            settings.storage_fault_injection,
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # type: ignore[no-redef]
        blob_client = getattr(app.state, "blob_client", None)
        if blob_client is not None:
            await blob_client.aclose()
        await engine.dispose()

    app.include_router(home_router)
    app.include_router(gallery_router)
    app.include_router(upload_router)
    app.include_router(healthz_router)
    app.include_router(metrics_router)

    return app


app = create_app()
