"""
FastAPI application entrypoint for the DataLens Navigator backend.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from datalens.config import get_settings
from datalens.core.errors import DataLensError
from datalens.core.logging import setup_logging, get_logger
from datalens.api.routes import data, datalenses, datasources, distinct_values, health, tables
from datalens.services.connection_manager import get_connection_manager

# Initialize settings and logging
settings = get_settings()
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.project_name} v{settings.version}")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"API prefix: {settings.api_v1_prefix}")

    yield

    # Shutdown
    logger.info("Shutting down application")
    await get_connection_manager().close_all()


# Create FastAPI application
app = FastAPI(
    title=settings.project_name,
    version=settings.version,
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    docs_url=f"{settings.api_v1_prefix}/docs",
    redoc_url=f"{settings.api_v1_prefix}/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_methods_list,
    allow_headers=["*"],
)


# ---------------------------
# Error envelope: {"error": message}
# ---------------------------
@app.exception_handler(DataLensError)
async def datalens_error_handler(request: Request, exc: DataLensError):
    if exc.status_code >= 500:
        logger.error(f"Error in {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error in {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown error"})


# Include routers
app.include_router(data.router, prefix=settings.api_v1_prefix)
app.include_router(distinct_values.router, prefix=settings.api_v1_prefix)
app.include_router(tables.router, prefix=settings.api_v1_prefix)
app.include_router(datalenses.router, prefix=settings.api_v1_prefix)
app.include_router(datasources.router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return JSONResponse({
        "message": "DataLens Navigator",
        "version": settings.version,
        "docs": f"{settings.api_v1_prefix}/docs",
        "health": f"{settings.api_v1_prefix}/health"
    })


@app.get("/health")
async def root_health():
    """Alternative health check at root level."""
    return {"status": "healthy", "service": settings.project_name}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "datalens.app:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
