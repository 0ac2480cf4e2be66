"""
Data lens listing for a data source.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query

from datalens.api.deps import require_api_token
from datalens.core.errors import InvalidRequestError
from datalens.core.logging import get_logger
from datalens.models.schemas import ERROR_RESPONSES
from datalens.models.lens import DataLensListResponse
from datalens.sqliteDb.db import DatabaseService, get_db_service

logger = get_logger(__name__)

router = APIRouter(prefix="/datalenses", tags=["Data Lenses"], responses=ERROR_RESPONSES)


@router.get("", response_model=DataLensListResponse, dependencies=[Depends(require_api_token)])
async def list_datalenses(
    datasource_id: Optional[str] = Query(None, alias="datasourceId"),
    db_service: DatabaseService = Depends(get_db_service)
):
    """List the lenses defined over a data source, newest first."""
    if not datasource_id:
        raise InvalidRequestError("Data source ID is required")

    lenses = db_service.list_datalenses(datasource_id)
    logger.debug(f"Found {len(lenses)} lenses for data source {datasource_id}")
    return DataLensListResponse(lenses=lenses)
