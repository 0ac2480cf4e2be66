"""
Unit tests for datalens/services/query_builder.py

Covers projection, filters, keyset pagination, total ordering and the
count/distinct-values queries.
"""
import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from datalens.models.lens import Column, PageRequest, TableConfig
from datalens.services.query_builder import (
    CURSOR_KEY_ALIAS,
    build_count_query,
    build_distinct_values_query,
    build_order_by,
    build_page_queries,
    escape_like,
)

TO_CHAR = "to_char(created_at, 'YYYY-MM-DD\"T\"HH24:MI:SS.MS\"Z\"') as created_at"
DEFAULT_ORDER = (
    "ORDER BY order_id::numeric ASC, customer_name::text ASC, total_amount::numeric ASC, "
    "is_paid ASC, created_at::timestamptz ASC"
)


def page(**kwargs) -> PageRequest:
    kwargs.setdefault("table", "orders")
    return PageRequest(**kwargs)


def placeholders(sql):
    return [int(n) for n in re.findall(r"\$(\d+)", sql)]


class TestDataQuery:
    """Tests for the SELECT statement."""

    def test_first_page_without_filters(self, orders_table):
        queries = build_page_queries(orders_table, page(page_size=50))

        assert queries.data.sql == (
            f"SELECT order_id, customer_name, total_amount, is_paid, {TO_CHAR} FROM public.orders "
            f"{DEFAULT_ORDER} LIMIT $1::bigint"
        )
        assert queries.data.params == [50]

    def test_schema_is_applied(self, orders_table):
        queries = build_page_queries(orders_table, page(), schema="analytics")
        assert " FROM analytics.orders " in queries.data.sql
        assert queries.count.sql == "SELECT COUNT(*) AS total FROM analytics.orders"

    def test_datetime_column_is_formatted(self, orders_table):
        queries = build_page_queries(orders_table, page())
        assert TO_CHAR in queries.data.sql

    def test_single_number_filter(self, orders_table):
        queries = build_page_queries(orders_table, page(filters={"total_amount": ["19.99"]}))

        assert "WHERE total_amount = $1::numeric ORDER BY" in queries.data.sql
        assert queries.data.params == [Decimal("19.99"), 100]

    def test_multi_value_filter(self, orders_table):
        queries = build_page_queries(orders_table, page(filters={"total_amount": ["1", "2", "3"]}))

        assert "WHERE total_amount IN ($1::numeric, $2::numeric, $3::numeric)" in queries.data.sql
        assert queries.data.params == [Decimal("1"), Decimal("2"), Decimal("3"), 100]

    def test_boolean_filter(self):
        table = TableConfig(
            name="orders",
            sort_column="order_id",
            columns=[Column(name="order_id", type="number"), Column(name="is_paid", type="boolean")],
        )
        queries = build_page_queries(table, page(filters={"is_paid": ["true"]}))

        assert "WHERE CAST(is_paid AS bool) = $1::bool" in queries.data.sql
        assert queries.data.params[0] is True

    def test_datetime_filter(self, orders_table):
        queries = build_page_queries(orders_table, page(filters={"created_at": ["2024-01-01T00:00:00Z"]}))

        assert "WHERE created_at = $1::timestamp" in queries.data.sql
        assert queries.data.params[0] == datetime(2024, 1, 1)

    def test_unknown_filter_column_does_not_change_query(self, orders_table):
        base = build_page_queries(orders_table, page(filters={"customer_name": ["Ada"]}))
        with_unknown = build_page_queries(
            orders_table, page(filters={"customer_name": ["Ada"], "legacy_column": ["x"]})
        )

        assert with_unknown.data.sql == base.data.sql
        assert with_unknown.data.params == base.data.params
        assert with_unknown.count.sql == base.count.sql
        assert with_unknown.count.params == base.count.params

    def test_placeholders_are_contiguous(self, orders_table):
        queries = build_page_queries(
            orders_table,
            page(
                filters={"customer_name": ["Ada", "Grace"], "is_paid": ["true"]},
                last_key="10",
            ),
        )
        numbers = placeholders(queries.data.sql)
        assert numbers == list(range(1, len(queries.data.params) + 1))


class TestKeysetPagination:
    """Tests for the cursor predicate."""

    def test_cursor_without_filters_starts_where(self, orders_table):
        queries = build_page_queries(orders_table, page(last_key="250", page_size=25))

        assert "FROM public.orders WHERE order_id::numeric > $1::numeric ORDER BY" in queries.data.sql
        assert queries.data.params == [Decimal("250"), 25]

    def test_cursor_is_anded_after_filters(self, orders_table):
        queries = build_page_queries(
            orders_table, page(filters={"customer_name": ["Ada"]}, last_key="250")
        )

        assert "WHERE customer_name = $1 AND order_id::numeric > $2::numeric ORDER BY" in queries.data.sql
        assert queries.data.params == ["Ada", Decimal("250"), 100]

    @pytest.mark.parametrize("sentinel", [None, "", "undefined"])
    def test_missing_cursor_is_first_page(self, orders_table, sentinel):
        queries = build_page_queries(orders_table, page(last_key=sentinel))
        assert "WHERE" not in queries.data.sql

    def test_datetime_cursor(self):
        table = TableConfig(
            name="events",
            sort_column="occurred_at",
            columns=[Column(name="occurred_at", type="datetime"), Column(name="kind", type="text")],
        )
        queries = build_page_queries(table, page(table="events", last_key="2024-05-01T08:00:00.000Z"))

        assert "WHERE occurred_at::timestamptz > $1::timestamptz" in queries.data.sql
        assert queries.data.params[0] == datetime(2024, 5, 1, 8, tzinfo=timezone.utc)

    def test_text_cursor(self):
        table = TableConfig(name="tags", sort_column="slug", columns=[Column(name="slug", type="text")])
        queries = build_page_queries(table, page(table="tags", last_key="m"))

        assert "WHERE slug::text > $1::text" in queries.data.sql
        assert queries.data.params == ["m", 100]

    def test_descending_sort_column_pages_backwards(self, orders_table):
        queries = build_page_queries(
            orders_table, page(sort_field="order_id", sort_direction="desc", last_key="500")
        )

        assert "WHERE order_id::numeric < $1::numeric" in queries.data.sql
        assert "ORDER BY order_id::numeric DESC, customer_name::text ASC" in queries.data.sql

    def test_ascending_sort_column_pages_forwards(self, orders_table):
        queries = build_page_queries(
            orders_table, page(sort_field="order_id", sort_direction="asc", last_key="500")
        )
        assert "WHERE order_id::numeric > $1::numeric" in queries.data.sql

    def test_datetime_sort_column_projects_full_precision_key(self):
        table = TableConfig(
            name="events",
            sort_column="occurred_at",
            columns=[Column(name="occurred_at", type="datetime"), Column(name="kind", type="text")],
        )
        queries = build_page_queries(table, page(table="events"))

        assert queries.data.sql.startswith(
            "SELECT to_char(occurred_at, 'YYYY-MM-DD\"T\"HH24:MI:SS.MS\"Z\"') as occurred_at, kind, "
            "occurred_at::timestamptz AS _cursor_key FROM public.events"
        )
        assert queries.cursor_key == CURSOR_KEY_ALIAS
        assert "_cursor_key" not in queries.count.sql

    def test_other_sort_columns_use_their_own_value(self, orders_table):
        queries = build_page_queries(orders_table, page())

        assert CURSOR_KEY_ALIAS not in queries.data.sql
        assert queries.cursor_key == "order_id"


class TestOrdering:
    """Tests for the total ordering of pages."""

    def test_default_order(self, orders_table):
        items, operator = build_order_by(orders_table, None)
        rendered = [item.render() for item in items]

        assert rendered == [
            "order_id::numeric ASC",
            "customer_name::text ASC",
            "total_amount::numeric ASC",
            "is_paid ASC",
            "created_at::timestamptz ASC",
        ]
        assert operator == ">"

    def test_requested_field_then_sort_column_then_rest(self, orders_table):
        items, operator = build_order_by(orders_table, "total_amount", "desc")
        rendered = [item.render() for item in items]

        assert rendered == [
            "total_amount::numeric DESC",
            "order_id::numeric ASC",
            "customer_name::text ASC",
            "is_paid ASC",
            "created_at::timestamptz ASC",
        ]
        assert operator == ">"

    def test_requested_field_in_sql(self, orders_table):
        queries = build_page_queries(orders_table, page(sort_field="customer_name", sort_direction="asc"))
        assert (
            "ORDER BY customer_name::text ASC, order_id::numeric ASC, total_amount::numeric ASC, "
            "is_paid ASC, created_at::timestamptz ASC LIMIT $1::bigint"
        ) in queries.data.sql

    def test_unknown_sort_field_falls_back_to_sort_column(self, orders_table):
        queries = build_page_queries(orders_table, page(sort_field="nope", sort_direction="desc", last_key="500"))

        assert "WHERE order_id::numeric < $1::numeric" in queries.data.sql
        assert "ORDER BY order_id::numeric DESC, customer_name::text ASC" in queries.data.sql

    def test_missing_sort_field_keeps_direction(self, orders_table):
        items, operator = build_order_by(orders_table, None, "desc")
        queries = build_page_queries(orders_table, page(sort_direction="desc", last_key="500"))

        assert items[0].render() == "order_id::numeric DESC"
        assert operator == "<"
        assert "WHERE order_id::numeric < $1::numeric ORDER BY order_id::numeric DESC" in queries.data.sql

    def test_every_column_appears_once(self, orders_table):
        items, _ = build_order_by(orders_table, "created_at", "asc")
        expressions = [item.expression.split("::")[0] for item in items]
        assert sorted(expressions) == sorted(column.name for column in orders_table.columns)


class TestCountQuery:
    """Tests for the COUNT query."""

    def test_count_uses_filters_only(self, orders_table):
        queries = build_page_queries(
            orders_table,
            page(filters={"customer_name": ["Ada"], "is_paid": ["false"]}, last_key="99", page_size=10),
        )

        assert queries.count.sql == (
            "SELECT COUNT(*) AS total FROM public.orders "
            "WHERE customer_name = $1 AND CAST(is_paid AS bool) = $2::bool"
        )
        assert queries.count.params == ["Ada", False]

    def test_count_is_independent_of_cursor(self, orders_table):
        filters = {"total_amount": ["10", "20"]}
        first = build_page_queries(orders_table, page(filters=filters))
        later = build_page_queries(orders_table, page(filters=filters, last_key="1234"))

        assert first.count.sql == later.count.sql
        assert first.count.params == later.count.params

    def test_count_without_filters(self, orders_table):
        assert build_count_query(orders_table, {}, "public").sql == "SELECT COUNT(*) AS total FROM public.orders"


class TestDistinctValuesQuery:
    """Tests for the distinct-values lookup."""

    def test_plain(self, orders_table):
        query = build_distinct_values_query(orders_table, orders_table.get_column("customer_name"))

        assert query.sql == (
            "SELECT DISTINCT customer_name FROM public.orders ORDER BY customer_name ASC LIMIT $1::bigint"
        )
        assert query.params == [1000]

    def test_search_term_comes_first(self, orders_table):
        query = build_distinct_values_query(
            orders_table,
            orders_table.get_column("customer_name"),
            search_term="ad",
            filters={"is_paid": ["true", "false"]},
            limit=50,
        )

        assert query.sql == (
            "SELECT DISTINCT customer_name FROM public.orders "
            "WHERE customer_name::text ILIKE $1 AND CAST(is_paid AS bool) IN ($2::bool, $3::bool) "
            "ORDER BY customer_name ASC LIMIT $4::bigint"
        )
        assert query.params == ["%ad%", True, False, 50]

    def test_filters_without_search_term(self, orders_table):
        query = build_distinct_values_query(
            orders_table, orders_table.get_column("is_paid"), filters={"customer_name": ["Ada"]}
        )
        assert "WHERE customer_name = $1 ORDER BY is_paid ASC" in query.sql

    def test_datetime_values_are_formatted(self, orders_table):
        query = build_distinct_values_query(orders_table, orders_table.get_column("created_at"))
        assert query.sql.startswith(f"SELECT DISTINCT {TO_CHAR} FROM public.orders")

    def test_like_wildcards_are_escaped(self):
        assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


class TestPostgresTypeNames:
    """Lens configs may carry the column types reported by information_schema."""

    @pytest.fixture
    def items_table(self):
        return TableConfig.model_validate({
            "name": "items",
            "sort_column": "id",
            "columns": [
                {"name": "id", "type": "integer"},
                {"name": "code", "type": "integer"},
                {"name": "label", "type": "character varying(255)"},
                {"name": "payload", "type": "jsonb"},
            ],
        })

    def test_integer_filter_binds_numeric(self, items_table):
        queries = build_page_queries(items_table, page(table="items", filters={"code": ["1"]}))

        assert "WHERE code = $1::numeric" in queries.data.sql
        assert queries.data.params == [Decimal("1"), 100]

    def test_integer_cursor_binds_numeric(self, items_table):
        queries = build_page_queries(items_table, page(table="items", last_key="2"))

        assert "WHERE id::numeric > $1::numeric" in queries.data.sql
        assert queries.data.params == [Decimal("2"), 100]

    def test_varchar_filter_binds_text(self, items_table):
        queries = build_page_queries(items_table, page(table="items", filters={"label": ["a"]}))
        assert "WHERE label = $1 ORDER BY" in queries.data.sql

    def test_unknown_type_filters_and_orders_on_text(self, items_table):
        queries = build_page_queries(items_table, page(table="items", filters={"payload": ['{"a": 1}']}))

        assert "WHERE payload::text = $1 ORDER BY" in queries.data.sql
        assert queries.data.params == ['{"a": 1}', 100]
        assert "payload::text ASC" in queries.data.sql
