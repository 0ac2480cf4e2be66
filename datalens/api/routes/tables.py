"""
Static tables configuration endpoint.
"""
from fastapi import APIRouter

from datalens.core.logging import get_logger
from datalens.models.schemas import ERROR_RESPONSES
from datalens.models.lens import TablesConfigResponse
from datalens.services.tables_config import load_tables

logger = get_logger(__name__)

router = APIRouter(prefix="/config", tags=["Configuration"], responses=ERROR_RESPONSES)


@router.get("", response_model=TablesConfigResponse)
async def get_tables_config():
    """Return the tables configured in the YAML tables file."""
    return TablesConfigResponse(tables=load_tables())
