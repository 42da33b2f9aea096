"""
FreightOps FastAPI Application
HTTP entry point for the stock allocation and booking progression engine
"""
import logging
import re

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from freightops.api.v1.api_router import api_router
from freightops.core.config import settings
from freightops.core.database import check_db_connection
from freightops.core.exceptions import (
    AlreadyReserved, FreightOpsException, InsufficientStock, NotFoundError,
    PartialAvailability, StateConflict, TenantMismatch, TransitionNotAllowed, ValidationError,
)
from freightops.core.logging import setup_logging
from freightops.schemas.common import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

# Most specific classes first
ERROR_STATUS_CODES = (
    (TenantMismatch, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AlreadyReserved, status.HTTP_409_CONFLICT),
    (StateConflict, status.HTTP_409_CONFLICT),
    (InsufficientStock, status.HTTP_409_CONFLICT),
    (PartialAvailability, status.HTTP_409_CONFLICT),
    (TransitionNotAllowed, status.HTTP_409_CONFLICT),
    (ValidationError, 422),
)


def error_code(exc: Exception) -> str:
    """TenantMismatch -> tenant_mismatch"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", type(exc).__name__).lower()


def status_for(exc: FreightOpsException) -> int:
    for exc_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
        ## FreightOps Allocation Engine

        - **Stock allocation**: FIFO and manual LPN reservation against demand lines
        - **Pickups**: pickup records with per-LPN warnings
        - **Bookings**: guarded import/export booking status progression and dispatch
        """,
        docs_url=settings.DOCS_URL,
        openapi_url=settings.OPENAPI_URL,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    def health_check():
        """
        Health check endpoint for monitoring and load balancers
        """
        db_status = check_db_connection()
        return HealthResponse(
            status="healthy" if db_status else "degraded",
            version=settings.APP_VERSION,
            database="connected" if db_status else "disconnected",
        )

    @app.exception_handler(FreightOpsException)
    async def engine_exception_handler(request: Request, exc: FreightOpsException):
        status_code = status_for(exc)
        if isinstance(exc, TenantMismatch):
            logger.warning(f"Tenant mismatch on {request.method} {request.url.path}: {exc.message}")
        body = ErrorResponse(error=error_code(exc), message=exc.message, details=exc.details)
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
        body = ErrorResponse(error="internal_error", message="An unexpected error occurred")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump(mode="json"))

    app.include_router(api_router, prefix=settings.API_V1_STR)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "freightops.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
