"""
Query assembler for lens table browsing.

Builds the paged data query, the matching COUNT query and the distinct-values
lookup from a table configuration and the request parameters.
"""
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from datalens.core.logging import get_logger
from datalens.models.lens import Column, PageRequest, TableConfig
from datalens.services.column_types import (
    cast_expression,
    coerce_cursor,
    cursor_expression,
    cursor_param_cast,
    normalize_type,
    select_expression,
)
from datalens.services.filters import build_filter_predicates
from datalens.services.sql_ast import (
    Comparison,
    ILike,
    OrderItem,
    Param,
    RenderedQuery,
    SelectQuery,
)

logger = get_logger(__name__)


# Full-precision copy of a datetime sort key; the displayed value is cut to milliseconds
CURSOR_KEY_ALIAS = "_cursor_key"


@dataclass
class PageQueries:
    data: RenderedQuery
    count: RenderedQuery
    cursor_key: str  # row key holding the next lastKey


def table_source(table: TableConfig, schema: str) -> str:
    return f"{schema}.{table.name}"


def build_projection(columns: List[Column]) -> List[str]:
    return [select_expression(column.name, column.type) for column in columns]


def cursor_key_projection(table: TableConfig) -> Optional[str]:
    """Extra select entry carrying the sort key at full precision, when needed."""
    sort_type = table.column_types.get(table.sort_column)
    if normalize_type(sort_type) != "datetime":
        return None
    return f"{cursor_expression(table.sort_column, sort_type)} AS {CURSOR_KEY_ALIAS}"


def build_order_by(
    table: TableConfig,
    sort_field: Optional[str],
    sort_direction: str = "asc",
) -> Tuple[List[OrderItem], str]:
    """
    Build a total ordering for the page.

    The requested field (when it is a known column other than the sort
    column) comes first, then the sort column ascending, then every other
    displayed column ascending so ties never reorder between pages. Without
    such a field the requested direction applies to the sort column.

    Returns:
        Order items and the comparison operator the pagination cursor must use
    """
    direction = sort_direction.upper()
    sort_type = table.column_types.get(table.sort_column)
    items: List[OrderItem] = []
    listed = set()

    requested = table.get_column(sort_field) if sort_field else None
    if requested is not None and requested.name != table.sort_column:
        items.append(OrderItem(cast_expression(requested.name, requested.type), direction))
        items.append(OrderItem(cast_expression(table.sort_column, sort_type), "ASC"))
        listed.update((requested.name, table.sort_column))
        cursor_operator = ">"
    else:
        # Missing, unknown or explicit sort column: the direction applies to it
        items.append(OrderItem(cast_expression(table.sort_column, sort_type), direction))
        listed.add(table.sort_column)
        cursor_operator = "<" if direction == "DESC" else ">"

    for column in table.columns:
        if column.name not in listed:
            items.append(OrderItem(cast_expression(column.name, column.type), "ASC"))
            listed.add(column.name)

    return items, cursor_operator


def build_cursor_predicate(table: TableConfig, last_key: str, operator: str = ">") -> Comparison:
    """Keyset predicate selecting rows past the previous page's last sort value."""
    sort_type = table.column_types.get(table.sort_column)
    return Comparison(
        cursor_expression(table.sort_column, sort_type),
        operator,
        Param(coerce_cursor(last_key, sort_type), cursor_param_cast(sort_type)),
    )


def build_count_query(table: TableConfig, filters: Mapping[str, Any], schema: str) -> RenderedQuery:
    """COUNT(*) over the filtered table; pagination never applies here."""
    query = SelectQuery(
        projection=["COUNT(*) AS total"],
        source=table_source(table, schema),
        where=build_filter_predicates(filters, table),
    )
    return query.render()


def build_page_queries(table: TableConfig, request: PageRequest, schema: str = "public") -> PageQueries:
    """
    Build the data and count queries for one page.

    Args:
        table: Lens table configuration
        request: Validated page request
        schema: Database schema holding the table

    Returns:
        Rendered data query and count query
    """
    where = build_filter_predicates(request.filters, table)
    order_by, cursor_operator = build_order_by(table, request.sort_field, request.sort_direction)

    cursor = request.cursor
    if cursor is not None:
        where.append(build_cursor_predicate(table, cursor, cursor_operator))

    projection = build_projection(table.columns)
    cursor_column = cursor_key_projection(table)
    if cursor_column is not None:
        projection.append(cursor_column)

    data_query = SelectQuery(
        projection=projection,
        source=table_source(table, schema),
        where=where,
        order_by=order_by,
        limit=Param(request.page_size, "::bigint"),
    ).render()

    return PageQueries(
        data=data_query,
        count=build_count_query(table, request.filters, schema),
        cursor_key=CURSOR_KEY_ALIAS if cursor_column is not None else table.sort_column,
    )


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_distinct_values_query(
    table: TableConfig,
    column: Column,
    search_term: str = "",
    filters: Optional[Mapping[str, Any]] = None,
    schema: str = "public",
    limit: int = 1000,
) -> RenderedQuery:
    """
    Distinct values of one column, optionally narrowed by a substring search
    and by the filters of the other columns.
    """
    where = []
    if search_term:
        where.append(ILike(f"{column.name}::text", Param(f"%{escape_like(search_term)}%")))
    where.extend(build_filter_predicates(filters or {}, table))

    query = SelectQuery(
        projection=[select_expression(column.name, column.type)],
        source=table_source(table, schema),
        where=where,
        order_by=[OrderItem(column.name)],
        limit=Param(limit, "::bigint"),
        distinct=True,
    )
    return query.render()
