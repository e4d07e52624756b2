import sys
import logging

from contextlib import asynccontextmanager
from importlib.metadata import version, PackageNotFoundError
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from signer.app.api.limits import BodySizeLimitMiddleware
from signer.app.api.routes import (
    max_request_bytes,
    router as sign_router,
    size_limit_message,
)
from signer.app.core.config import Settings, get_settings

logger = logging.getLogger("signer.main")


def get_app_version() -> str:
    """
    Resolve application version, falling back to the source version.
    """
    try:
        return version("pdf-sign-wizard")
    except PackageNotFoundError:
        return "1.0.0"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    settings.upload_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "signer_startup",
        extra={
            "service": "signer",
            "version": get_app_version(),
            "upload_dir": str(settings.upload_dir),
            "max_pdf_size_mb": settings.max_pdf_size_mb,
        },
    )

    try:
        yield
    finally:
        logger.info("signer_shutdown")


# =============================================================================
# Error rendering
#
# Every failure leaves the service as {"error": "<human readable>"}.
# =============================================================================

async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> ORJSONResponse:
    logger.warning("malformed_sign_request", extra={"errors": exc.errors()})
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Malformed upload request."},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> ORJSONResponse:
    # Last resort: nothing escapes to the transport layer unrendered.
    logger.exception("unhandled_error", exc_info=exc)
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Unexpected server error."},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory for the PDF signing service.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="PDF Signing Service",
        description="Stamps a visible signature block onto every PDF page.",
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Added first so CORS wraps it and 413s still carry CORS headers.
    app.add_middleware(
        BodySizeLimitMiddleware,
        max_body_bytes=max_request_bytes(settings),
        detail=size_limit_message(settings),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(sign_router)

    @app.get(
        "/healthz",
        tags=["Monitoring"],
        summary="Liveness and readiness probe",
    )
    async def health_check():
        """
        Verifies that the runtime is alive and correctly initialized.
        Does NOT touch the filesystem or sign anything.
        """
        return ORJSONResponse(
            content={
                "status": "ok",
                "service": "signer",
                "version": app.version,
                "runtime": f"python {sys.version.split()[0]}",
                "max_pdf_size_mb": settings.max_pdf_size_mb,
            }
        )

    return app


app = create_app()
