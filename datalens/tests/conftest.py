"""
Pytest configuration and shared fixtures.
"""
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing the app
_TEST_DIR = tempfile.mkdtemp(prefix="datalens-tests-")
os.environ["LOG_FILE"] = ""
os.environ["LOG_FORMAT"] = "text"
os.environ["METADATA_DB_PATH"] = os.path.join(_TEST_DIR, "metadata.db")
os.environ["TABLES_CONFIG_PATH"] = str(Path(__file__).parent.parent.parent / "config" / "tables.yaml")
os.environ.pop("API_TOKEN", None)

from datalens.config import Settings
from datalens.models.lens import Column, TableConfig


@pytest.fixture
def orders_table() -> TableConfig:
    """Orders table with one column of every type."""
    return TableConfig(
        name="orders",
        sort_column="order_id",
        key_column="order_id",
        columns=[
            Column(name="order_id", type="number"),
            Column(name="customer_name", type="text"),
            Column(name="total_amount", type="number"),
            Column(name="is_paid", type="boolean"),
            Column(name="created_at", type="datetime"),
        ],
    )


@pytest.fixture
def orders_lens_config() -> Dict[str, Any]:
    return {
        "tables": [
            {
                "name": "orders",
                "sort_column": "order_id",
                "key_column": "order_id",
                "columns": [
                    {"name": "order_id", "type": "number"},
                    {"name": "customer_name", "type": "text"},
                    {"name": "is_paid", "type": "boolean"},
                ],
            }
        ]
    }


@pytest.fixture
def test_settings() -> Settings:
    return Settings(log_file="", pool_cache_max_size=2)


@pytest.fixture
def temp_db():
    """Create a temporary database file for testing."""
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)

    yield path

    if os.path.exists(path):
        os.unlink(path)


@pytest.fixture
def db_service(temp_db):
    """Create a DatabaseService instance with temporary database."""
    from datalens.sqliteDb.db import DatabaseService
    return DatabaseService(db_path=temp_db)


def make_fake_pool(rows: List[Dict[str, Any]] = None, total: int = None) -> MagicMock:
    """
    Pool stand-in: COUNT queries return ``total`` (default len(rows)),
    every other query returns ``rows``.
    """
    rows = rows or []
    total = len(rows) if total is None else total

    async def fetch(sql, *params):
        if sql.startswith("SELECT COUNT(*)"):
            return [{"total": total}]
        return list(rows)

    pool = MagicMock()
    pool.fetch = AsyncMock(side_effect=fetch)
    pool.fetchrow = AsyncMock(return_value={"database": "warehouse", "user_name": "reader", "version": "PostgreSQL 16"})
    pool.close = AsyncMock()
    pool.terminate = MagicMock()
    return pool


@pytest.fixture
def make_pool():
    """Factory for fake pools with custom rows."""
    return make_fake_pool
