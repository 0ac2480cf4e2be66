"""
Column type registry.

Maps a lens column type tag (text, number, datetime, boolean) to the SQL
casts used in SELECT/ORDER BY and filter placeholders, and to the rules that
turn raw request strings into values asyncpg can bind.

Lens configurations built from ``information_schema`` carry PostgreSQL type
names (``integer``, ``character varying``, ``timestamp with time zone``...);
``normalize_type`` folds those into the four tags above. Anything else is
compared and paged on its text form.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from datalens.core.errors import InvalidRequestError

DATETIME_OUTPUT_FORMAT = 'YYYY-MM-DD"T"HH24:MI:SS.MS"Z"'

TRUE_VALUES = frozenset({"true", "t", "1", "yes"})

LOGICAL_TYPES = ("text", "number", "datetime", "boolean")

TYPE_ALIASES: Dict[str, str] = {
    # number
    "integer": "number",
    "int": "number",
    "int2": "number",
    "int4": "number",
    "int8": "number",
    "smallint": "number",
    "bigint": "number",
    "serial": "number",
    "smallserial": "number",
    "bigserial": "number",
    "numeric": "number",
    "decimal": "number",
    "real": "number",
    "float4": "number",
    "float8": "number",
    "double precision": "number",
    # datetime
    "timestamp": "datetime",
    "timestamptz": "datetime",
    "timestamp without time zone": "datetime",
    "timestamp with time zone": "datetime",
    "date": "datetime",
    # text
    "character varying": "text",
    "varchar": "text",
    "character": "text",
    "char": "text",
    "bpchar": "text",
    "citext": "text",
    "name": "text",
    "uuid": "text",
    # boolean
    "bool": "boolean",
}

# Length/precision modifiers such as varchar(255) or timestamp(3)
_TYPE_MODIFIER = re.compile(r"\s*\([^)]*\)")


def normalize_type(raw: Optional[str]) -> str:
    """
    Fold a PostgreSQL type name into a logical type tag.

    Example:
        >>> normalize_type("timestamp(3) with time zone")
        'datetime'

    Unrecognized names are returned lower-cased and handled by the default rule.
    """
    if not raw:
        return "text"
    name = _TYPE_MODIFIER.sub("", str(raw)).strip().lower()
    name = " ".join(name.split())
    if name in LOGICAL_TYPES:
        return name
    return TYPE_ALIASES.get(name, name)


def _to_text(raw: Any) -> str:
    return str(raw)


def _to_decimal(raw: Any) -> Decimal:
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise InvalidRequestError(f"Invalid number: '{raw}'")
    if not value.is_finite():
        raise InvalidRequestError(f"Invalid number: '{raw}'")
    return value


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in TRUE_VALUES


def parse_timestamp(raw: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    A trailing ``Z`` is accepted and values without an offset are taken as UTC.
    """
    if isinstance(raw, datetime):
        value = raw
    else:
        text = str(raw).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidRequestError(f"Invalid timestamp: '{raw}'")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_naive_timestamp(raw: Any) -> datetime:
    # ``timestamp`` (without time zone) parameters take naive datetimes
    return parse_timestamp(raw).replace(tzinfo=None)


@dataclass(frozen=True)
class ColumnTypeRule:
    """Casts and coercions for one column type tag."""
    name: str
    order_cast: str = ""
    param_cast: str = ""
    cursor_cast: str = ""
    filter_cast: str = ""
    coerce_filter: Callable[[Any], Any] = _to_text
    coerce_cursor: Callable[[Any], Any] = _to_text
    compare_as_bool: bool = False


# Unknown types are compared, ordered and paged on their text form so the
# bound parameter is always a string
DEFAULT_RULE = ColumnTypeRule(
    name="default",
    order_cast="::text",
    cursor_cast="::text",
    filter_cast="::text",
)

COLUMN_TYPES: Dict[str, ColumnTypeRule] = {
    "text": ColumnTypeRule(
        name="text",
        order_cast="::text",
        cursor_cast="::text",
        coerce_filter=_to_text,
        coerce_cursor=_to_text,
    ),
    "number": ColumnTypeRule(
        name="number",
        order_cast="::numeric",
        param_cast="::numeric",
        cursor_cast="::numeric",
        coerce_filter=_to_decimal,
        coerce_cursor=_to_decimal,
    ),
    "datetime": ColumnTypeRule(
        name="datetime",
        order_cast="::timestamptz",
        param_cast="::timestamp",
        cursor_cast="::timestamptz",
        coerce_filter=_to_naive_timestamp,
        coerce_cursor=parse_timestamp,
    ),
    "boolean": ColumnTypeRule(
        name="boolean",
        param_cast="::bool",
        cursor_cast="::bool",
        coerce_filter=_to_bool,
        coerce_cursor=_to_bool,
        compare_as_bool=True,
    ),
}


def get_rule(column_type: Optional[str]) -> ColumnTypeRule:
    """Return the rule for a type tag or PostgreSQL type name; unknown ones get the text default."""
    return COLUMN_TYPES.get(normalize_type(column_type), DEFAULT_RULE)


def cast_expression(column_name: str, column_type: Optional[str]) -> str:
    """Column reference cast for ordering, e.g. ``price::numeric``."""
    return f"{column_name}{get_rule(column_type).order_cast}"


def cursor_expression(column_name: str, column_type: Optional[str]) -> str:
    """Column reference cast for the keyset pagination comparison."""
    return f"{column_name}{get_rule(column_type).cursor_cast}"


def filter_expression(column_name: str, column_type: Optional[str]) -> str:
    """Left-hand side of a filter predicate."""
    rule = get_rule(column_type)
    if rule.compare_as_bool:
        return f"CAST({column_name} AS bool)"
    return f"{column_name}{rule.filter_cast}"


def param_cast(column_type: Optional[str]) -> Optional[str]:
    """SQL type suffix for filter placeholders, or None when untyped."""
    return get_rule(column_type).param_cast or None


def cursor_param_cast(column_type: Optional[str]) -> Optional[str]:
    return get_rule(column_type).cursor_cast or None


def coerce_value(raw: Any, column_type: Optional[str]) -> Any:
    """Convert a raw filter value into the value bound for ``column_type``."""
    return get_rule(column_type).coerce_filter(raw)


def coerce_cursor(raw: Any, column_type: Optional[str]) -> Any:
    """Convert a pagination cursor into the value bound for ``column_type``."""
    return get_rule(column_type).coerce_cursor(raw)


def select_expression(column_name: str, column_type: Optional[str]) -> str:
    """
    Projection entry for a column.

    Datetime columns are rendered as ISO-8601 text with milliseconds so the
    output is stable regardless of driver type mapping.
    """
    if normalize_type(column_type) == "datetime":
        return f"to_char({column_name}, '{DATETIME_OUTPUT_FORMAT}') as {column_name}"
    return column_name
