"""
Table data endpoint: paged, filtered and sorted rows of a lens table.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from datalens.api.deps import get_lens_service, parse_data_source, parse_page_size, require_api_token
from datalens.core.errors import InvalidRequestError
from datalens.core.logging import get_logger
from datalens.models.schemas import ERROR_RESPONSES
from datalens.models.lens import DataPage, PageRequest
from datalens.services.data_service import DataBrowserService, get_data_service
from datalens.services.filters import parse_filters
from datalens.services.lens_service import LensService

logger = get_logger(__name__)

router = APIRouter(prefix="/data", tags=["Data"], responses=ERROR_RESPONSES)


@router.get("", response_model=DataPage, dependencies=[Depends(require_api_token)])
async def get_table_data(
    table: Optional[str] = Query(None, description="Table name from the lens configuration"),
    datalens_id: Optional[str] = Query(None, alias="datalensId"),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    sort_field: Optional[str] = Query(None, alias="sortField"),
    sort_direction: Optional[str] = Query("asc", alias="sortDirection"),
    filters: Optional[str] = Query(None, description="JSON map of column to selected values"),
    last_key: Optional[str] = Query(None, alias="lastKey"),
    data_source: Optional[str] = Query(None, alias="dataSource"),
    lens_service: LensService = Depends(get_lens_service),
    data_service: DataBrowserService = Depends(get_data_service),
):
    """
    Return one page of rows using keyset pagination.

    Pass the response's `lastKey` back as `lastKey` to get the next page.
    The generated SQL and parameters are echoed in `query`.
    """
    if not table:
        raise InvalidRequestError("Table is required")
    if not datalens_id:
        raise InvalidRequestError("DataLens ID is required")

    try:
        request = PageRequest(
            table=table,
            page_size=parse_page_size(page_size),
            sort_field=sort_field or None,
            sort_direction=sort_direction or "asc",
            filters=parse_filters(filters),
            last_key=last_key,
        )
    except ValidationError as e:
        raise InvalidRequestError(e.errors()[0]["msg"])

    descriptor = parse_data_source(data_source)
    lens, table_config = lens_service.get_table(datalens_id, table)
    if descriptor is None:
        descriptor = lens_service.get_credentials(lens)

    logger.debug(
        f"Fetching page of {table} (pageSize={request.page_size}, sort={request.sort_field} {request.sort_direction})",
        extra={"table": table, "datalens_id": datalens_id},
    )
    return await data_service.fetch_page(table_config, request, descriptor)
