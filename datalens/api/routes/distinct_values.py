"""
Distinct values of a column, used to populate filter dropdowns.
"""
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query

from datalens.api.deps import get_lens_service, parse_data_source, require_api_token
from datalens.core.errors import InvalidRequestError, NotFoundError
from datalens.core.logging import get_logger
from datalens.models.schemas import ERROR_RESPONSES
from datalens.services.data_service import DataBrowserService, get_data_service
from datalens.services.filters import parse_filters
from datalens.services.lens_service import LensService
from datalens.services.tables_config import find_table

logger = get_logger(__name__)

router = APIRouter(prefix="/distinct-values", tags=["Data"], responses=ERROR_RESPONSES)


@router.get("", response_model=List[Any], dependencies=[Depends(require_api_token)])
async def get_distinct_values(
    table: Optional[str] = Query(None),
    column: Optional[str] = Query(None),
    search_term: Optional[str] = Query("", alias="searchTerm"),
    filters: Optional[str] = Query(None),
    datalens_id: Optional[str] = Query(None, alias="datalensId"),
    data_source: Optional[str] = Query(None, alias="dataSource"),
    lens_service: LensService = Depends(get_lens_service),
    data_service: DataBrowserService = Depends(get_data_service),
):
    """
    Return up to 1000 distinct values of `column`, optionally narrowed by a
    case-insensitive substring `searchTerm` and the current filters.

    The table comes from the lens when `datalensId` is given, otherwise from
    the static tables configuration.
    """
    if not table or not column:
        raise InvalidRequestError("Table and column are required")

    filter_map = parse_filters(filters)
    descriptor = parse_data_source(data_source)

    if datalens_id:
        lens, table_config = lens_service.get_table(datalens_id, table)
        if descriptor is None:
            descriptor = lens_service.get_credentials(lens)
    else:
        table_config = find_table(table)
        if table_config is None:
            raise NotFoundError("Table not found")

    return await data_service.fetch_distinct_values(
        table_config,
        column,
        search_term=search_term or "",
        filters=filter_map,
        descriptor=descriptor,
    )
