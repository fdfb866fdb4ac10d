"""
Skin Wellness Analysis API

Scores facial skin photos through the SkinXS diagnostic API and serves the
results to the clinical documentation flow.

This API provides:
- Rate-limited analysis of photo sessions
- Polling of analysis status and results
- The category and parameter score catalog
- Doctor validation of AI results
"""

import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError as SchemaValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from skinwellness.config.config import Settings, get_settings
from skinwellness.config.logging_config import configure_logging, get_logger, log_request_context
from skinwellness.database.supabase_store import SupabaseStore
from skinwellness.exceptions import SkinAnalysisError
from skinwellness.models.analysis_models import AnalysisStatus, SkinWellnessCategory
from skinwellness.models.models import (
    AnalyzeRequest,
    AnalyzeResponse,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    NotFoundStatus,
    ParameterCatalogEntry,
    ValidationRequest,
)
from skinwellness.models.validation_models import SkinAnalysisValidation
from skinwellness.services.analysis_orchestrator import SkinAnalysisService
from skinwellness.services.diagnostic_client import SkinXSClient
from skinwellness.services.parameter_catalog import get_parameter_label, get_parameter_score_config
from skinwellness.services.skin_categories import SKIN_WELLNESS_CATEGORIES
from skinwellness.services.validation_service import ValidationService

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs startup and closes the HTTP clients on shutdown.
    """
    settings: Settings = app.state.settings

    logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        config=settings.get_safe_config_dict(),
    )

    yield

    for resource in app.state.closeables:
        await resource.aclose()
    logger.info("Application shutting down")


def create_app(
    settings: Settings | None = None,
    analysis_service: SkinAnalysisService | None = None,
    validation_service: ValidationService | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing.
        analysis_service: Optional pre-built service (tests pass fakes).
        validation_service: Optional pre-built validation service.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=__doc__,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.settings = settings
    app.state.closeables = []
    if analysis_service is None or validation_service is None:
        store = SupabaseStore.from_settings(settings)
        client = SkinXSClient(settings=settings)
        app.state.closeables = [store, client]
        analysis_service = analysis_service or SkinAnalysisService(store, client, settings)
        validation_service = validation_service or ValidationService(store, analysis_service)
    app.state.analysis_service = analysis_service
    app.state.validation_service = validation_service

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and context."""
        request_id = str(uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        # Bind request context for all logs in this request
        log_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)

        processing_time = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-Ms"] = str(processing_time)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            processing_time_ms=processing_time,
        )

        return response

    # Exception handlers
    @app.exception_handler(SkinAnalysisError)
    async def skin_analysis_exception_handler(request: Request, exc: SkinAnalysisError):
        """Map domain errors to their HTTP status with a structured body."""
        log = logger.warning if exc.status_code < 500 else logger.error
        log("Request failed", error=exc.code, message=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.code,
                message=exc.message,
                details=exc.details or None,
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(SchemaValidationError)
    async def validation_exception_handler(request: Request, exc: SchemaValidationError):
        """Malformed request bodies and parameters are client errors (400)."""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error="BAD_REQUEST",
                message="Invalid request",
                details={"errors": [
                    {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
                    for err in exc.errors()
                ]},
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with structured response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=f"HTTP_{exc.status_code}",
                message=str(exc.detail),
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception", error=str(exc))
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                message="An unexpected error occurred",
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(mode="json"),
        )

    # Register routes
    register_routes(app)

    return app


def get_analysis_service(request: Request) -> SkinAnalysisService:
    return request.app.state.analysis_service


def get_validation_service(request: Request) -> ValidationService:
    return request.app.state.validation_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
        """
        Health check endpoint for monitoring.

        Returns system health status and component checks.
        """
        checks = {
            "api": True,
            "skinxs_configured": bool(settings.skinxs_api_key),
            "store_configured": bool(settings.supabase_url and settings.supabase_service_role_key),
        }

        if all(checks.values()):
            status = HealthStatus.HEALTHY
        elif checks["api"]:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        return HealthResponse(
            status=status,
            version=settings.app_version,
            environment=settings.environment,
            checks=checks,
        )

    @app.post("/api/skin-analysis", response_model=AnalyzeResponse, tags=["Analysis"])
    async def analyze(
        request: AnalyzeRequest,
        service: SkinAnalysisService = Depends(get_analysis_service),
    ) -> JSONResponse:
        """
        Run a SkinXS analysis for a photo session.

        The call blocks until the analysis is stored (up to the SkinXS
        timeout). Clients may poll GET /api/skin-analysis meanwhile.
        """
        logger.info(
            "Skin analysis requested",
            photo_session_id=request.photo_session_id,
            doctor_id=request.doctor_id,
            clinical_session_id=request.clinical_session_id,
        )
        outcome = await service.run_analysis(
            request.photo_session_id or "",
            request.doctor_id or "",
            request.clinical_session_id or None,
        )
        response = AnalyzeResponse(diagnostic_id=outcome.diagnostic_id, duration=outcome.duration_ms)
        return JSONResponse(content=response.model_dump(mode="json", by_alias=True))

    @app.get("/api/skin-analysis", tags=["Analysis"])
    async def get_analysis(
        photo_session_id: str | None = Query(default=None, alias="photoSessionId"),
        service: SkinAnalysisService = Depends(get_analysis_service),
    ) -> JSONResponse:
        """Current analysis state of a photo session (pending, completed, failed or not_found)."""
        if not photo_session_id:
            raise HTTPException(status_code=400, detail="Missing photoSessionId parameter")

        status: AnalysisStatus | None = await service.get_analysis_result(photo_session_id)
        if status is None:
            return JSONResponse(status_code=404, content=NotFoundStatus().model_dump())

        return JSONResponse(content=status.model_dump(mode="json", by_alias=True, exclude_none=True))

    @app.get("/api/skin-analysis/categories", tags=["Catalog"])
    async def get_categories() -> list[dict]:
        """The ten skin wellness categories in display order."""
        return [category.model_dump(mode="json", by_alias=True) for category in SKIN_WELLNESS_CATEGORIES]

    @app.get("/api/skin-analysis/parameters/{key}", tags=["Catalog"])
    async def get_parameter(key: str) -> dict:
        """Score scale and labels of one parameter."""
        config = get_parameter_score_config(key)
        if config is None:
            raise HTTPException(status_code=404, detail="Parameter not found")
        entry = ParameterCatalogEntry(key=key, label=get_parameter_label(key), config=config)
        return entry.model_dump(mode="json", by_alias=True)

    @app.post("/api/skin-analysis/validations", tags=["Validation"])
    async def save_validation(
        request: ValidationRequest,
        service: ValidationService = Depends(get_validation_service),
    ) -> dict:
        """Save the doctor-validated version of a completed analysis."""
        saved: SkinAnalysisValidation = await service.validate(
            request.photo_session_id,
            request.doctor_id,
            request.validated_details,
            validated_attributes=request.validated_attributes,
            validated_overview_text=request.validated_overview_text,
            priority_face_concerns=request.priority_face_concerns,
            priority_additional_concerns=request.priority_additional_concerns,
            concerns_manually_edited=request.concerns_manually_edited,
        )
        return saved.model_dump(mode="json", by_alias=True)

    @app.get("/api/skin-analysis/validations/{photo_session_id}", tags=["Validation"])
    async def get_validation(
        photo_session_id: str,
        service: ValidationService = Depends(get_validation_service),
    ) -> dict:
        validation = await service.get_validation(photo_session_id)
        if validation is None:
            raise HTTPException(status_code=404, detail="Validation not found")
        return validation.model_dump(mode="json", by_alias=True)

    @app.delete("/api/skin-analysis/validations/{photo_session_id}", tags=["Validation"])
    async def delete_validation(
        photo_session_id: str,
        service: ValidationService = Depends(get_validation_service),
    ) -> dict:
        """Reset a session to its AI values."""
        await service.delete_validation(photo_session_id)
        return {"success": True}


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "skinwellness.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
