"""
Data source utilities.
"""
from typing import Any, Dict
from fastapi import APIRouter, Depends

from datalens.api.deps import require_api_token
from datalens.core.errors import InvalidRequestError, QueryExecutionError
from datalens.core.logging import get_logger
from datalens.models.schemas import ERROR_RESPONSES
from datalens.models.lens import ConnectionTestRequest, DataSourceDescriptor
from datalens.services.connection_manager import check_connection

logger = get_logger(__name__)

router = APIRouter(prefix="/datasources", tags=["Data Sources"], responses=ERROR_RESPONSES)


@router.post("/test-connection", response_model=Dict[str, Any], dependencies=[Depends(require_api_token)])
async def verify_datasource_connection(request: ConnectionTestRequest):
    """
    Check that a JDBC URL and credentials can open a connection.

    Opens a single connection and runs `SELECT 1`; nothing is cached.
    """
    if not request.jdbc_url or not request.username or not request.password:
        raise InvalidRequestError("Missing required fields")

    descriptor = DataSourceDescriptor(
        jdbc_url=request.jdbc_url,
        username=request.username,
        password=request.password,
    )
    success, error = await check_connection(descriptor)
    if not success:
        raise QueryExecutionError(error or "Failed to connect to database")

    return {"success": True}
