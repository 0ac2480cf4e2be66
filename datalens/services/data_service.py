"""
Data browsing service.

Runs the page and count queries for a lens table against the resolved
connection pool and assembles the response envelope.
"""
import asyncio
from datetime import date, datetime
from functools import lru_cache
from typing import Any, List, Mapping, Optional

from datalens.config import get_settings
from datalens.core.errors import NotFoundError
from datalens.core.logging import get_logger
from datalens.models.lens import DataPage, DataSourceDescriptor, PageRequest, QueryInfo, TableConfig
from datalens.services.connection_manager import (
    ConnectionPoolManager,
    fetch_rows,
    get_connection_manager,
)
from datalens.services.query_builder import (
    CURSOR_KEY_ALIAS,
    build_distinct_values_query,
    build_page_queries,
)

logger = get_logger(__name__)


def format_cursor(value: Any) -> Optional[str]:
    """String form of a sort column value, used as the next ``lastKey``."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class DataBrowserService:
    """Paged, filtered and sorted reads of lens tables."""

    def __init__(self, pool_manager: Optional[ConnectionPoolManager] = None, settings=None):
        self.settings = settings or get_settings()
        self.pool_manager = pool_manager if pool_manager is not None else get_connection_manager()

    async def fetch_page(
        self,
        table: TableConfig,
        request: PageRequest,
        descriptor: Optional[DataSourceDescriptor] = None,
    ) -> DataPage:
        """
        Fetch one page of ``table``.

        The data query and the count query run concurrently; if either fails
        the whole request fails.

        Args:
            table: Lens table configuration
            request: Page size, sort, filters and cursor
            descriptor: Connection override; None uses the configured defaults

        Returns:
            DataPage with rows, hasMore, lastKey, totalCount and the echoed SQL
        """
        queries = build_page_queries(table, request, schema=self.settings.db_schema)
        pool = await self.pool_manager.resolve(descriptor)

        rows, count_rows = await asyncio.gather(
            fetch_rows(pool, queries.data),
            fetch_rows(pool, queries.count),
        )

        total = int(count_rows[0]["total"]) if count_rows else 0
        last_key = format_cursor(rows[-1].get(queries.cursor_key)) if rows else None
        if queries.cursor_key == CURSOR_KEY_ALIAS:
            for row in rows:
                row.pop(CURSOR_KEY_ALIAS, None)

        logger.info(
            f"Fetched {len(rows)} of {total} rows from {table.name}",
            extra={"table": table.name},
        )

        return DataPage(
            data=rows,
            has_more=len(rows) == request.page_size,
            last_key=last_key,
            total_count=total,
            query=QueryInfo(sql=queries.data.sql, params=queries.data.params),
        )

    async def fetch_distinct_values(
        self,
        table: TableConfig,
        column_name: str,
        search_term: str = "",
        filters: Optional[Mapping[str, Any]] = None,
        descriptor: Optional[DataSourceDescriptor] = None,
    ) -> List[Any]:
        """
        Distinct values of one column for filter dropdowns.

        Raises:
            NotFoundError: If the column is not part of the table configuration
        """
        column = table.get_column(column_name)
        if column is None:
            raise NotFoundError("Column not found in table")

        query = build_distinct_values_query(
            table,
            column,
            search_term=search_term,
            filters=filters,
            schema=self.settings.db_schema,
            limit=self.settings.distinct_values_limit,
        )
        pool = await self.pool_manager.resolve(descriptor)
        rows = await fetch_rows(pool, query)
        return [row[column.name] for row in rows]


@lru_cache()
def get_data_service() -> DataBrowserService:
    """Get cached data browsing service."""
    return DataBrowserService()
