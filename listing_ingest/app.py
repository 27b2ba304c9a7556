"""FastAPI application."""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from listing_ingest.endpoints import router
from listing_ingest.errors import PipelineError, RateLimited, ValidationFailed
from listing_ingest.logging_config import configure_logging
from listing_ingest.services import Services, build_services
from listing_ingest.settings import settings


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    body = {"error": exc.message}
    headers = None

    if isinstance(exc, ValidationFailed):
        body["details"] = [v.as_dict() for v in exc.violations]
    elif isinstance(exc, RateLimited):
        retry_after = max(0, int((exc.reset_at - datetime.now(timezone.utc)).total_seconds()))
        body["reset_at"] = exc.reset_at.isoformat()
        headers = {"Retry-After": str(retry_after), "X-RateLimit-Remaining": str(exc.remaining)}

    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


def create_app(services: Services = None) -> FastAPI:
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.services.close()

    app = FastAPI(
        title="Property Listing Ingestion Pipeline",
        description="Image renditions, object storage and two-phase listing persistence",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS middleware (configure for production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify allowed origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "Property Listing Ingestion Pipeline",
            "version": "1.0.0",
            "endpoints": {
                "upload": "POST /v1/images",
                "create": "POST /v1/listings",
                "list": "GET /v1/listings",
                "get": "GET /v1/listings/{listing_id}",
                "delete": "DELETE /v1/listings/{listing_id}",
            }
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
