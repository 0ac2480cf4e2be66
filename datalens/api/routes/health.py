"""
Health check endpoint for service monitoring.
"""
from fastapi import APIRouter

from datalens.models.schemas import HealthResponse
from datalens.config import get_settings
from datalens.services.connection_manager import get_connection_manager
from datalens.sqliteDb.db import get_db_service
from datalens.core.logging import get_logger

router = APIRouter(prefix="/health", tags=["Health"])
logger = get_logger(__name__)


@router.get("", response_model=HealthResponse)
async def health_check():
    """
    Check health status of the service and its dependencies.

    Returns status of:
    - Overall service
    - Metadata store
    - Number of open warehouse connection pools

    Warehouse databases are not contacted.
    """
    logger.debug("Health check requested")
    settings = get_settings()

    services_status = {}
    overall_status = "healthy"

    try:
        conn = get_db_service().get_connection()
        try:
            conn.execute("SELECT 1")
        finally:
            conn.close()
        services_status["metadata_store"] = "connected"
    except Exception as e:
        logger.error(f"Metadata store health check failed: {e}")
        services_status["metadata_store"] = "error"
        overall_status = "unhealthy"

    services_status["connection_pools"] = str(len(get_connection_manager()))

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        services=services_status
    )
