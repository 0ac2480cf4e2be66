"""
Filter predicate builder.

Turns a filter map (column name -> selected values) into WHERE clause terms.
Values within one column are OR-ed through ``IN``; columns are AND-ed by the
query renderer. The same builder feeds the data, count and distinct-values
queries.
"""
import json
from typing import Any, Dict, List, Mapping, Optional

from datalens.core.errors import InvalidRequestError
from datalens.core.logging import get_logger
from datalens.models.lens import Column, TableConfig
from datalens.services.column_types import coerce_value, filter_expression, param_cast
from datalens.services.sql_ast import Comparison, InList, Param, Predicate

logger = get_logger(__name__)


def parse_filters(raw: Optional[str]) -> Dict[str, Any]:
    """
    Decode the JSON ``filters`` request parameter.

    Args:
        raw: JSON object text, or None/empty for no filters

    Returns:
        Mapping of column name to list of values

    Raises:
        InvalidRequestError: If the text is not a JSON object
    """
    if not raw:
        return {}
    try:
        filters = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidRequestError(f"Invalid filters parameter: {e.msg}")
    if not isinstance(filters, dict):
        raise InvalidRequestError("Invalid filters parameter: expected a JSON object")
    return filters


def active_filters(filters: Mapping[str, Any], table: TableConfig) -> Dict[str, List[Any]]:
    """Keep only entries for configured columns with a non-empty list of values."""
    active = {}
    for column_name, values in (filters or {}).items():
        if table.get_column(column_name) is None:
            logger.debug(f"Ignoring filter on unknown column '{column_name}' of table '{table.name}'")
            continue
        if not isinstance(values, list) or not values:
            continue
        active[column_name] = values
    return active


def build_column_predicate(column: Column, values: List[Any]) -> Predicate:
    """Equality for a single value, IN for several; each value coerced on its own."""
    expression = filter_expression(column.name, column.type)
    cast = param_cast(column.type)
    params = [Param(coerce_value(value, column.type), cast) for value in values]
    if len(params) == 1:
        return Comparison(expression, "=", params[0])
    return InList(expression, params)


def build_filter_predicates(filters: Mapping[str, Any], table: TableConfig) -> List[Predicate]:
    """
    Build the predicates for every usable filter entry.

    Unknown columns and empty selections are dropped silently so stale
    filters from an older lens configuration do not break the request.
    """
    return [
        build_column_predicate(table.get_column(column_name), values)
        for column_name, values in active_filters(filters, table).items()
    ]
