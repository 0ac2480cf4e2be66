"""API routes package."""
from datalens.api.routes import data, datalenses, datasources, distinct_values, health, tables

__all__ = ["data", "datalenses", "datasources", "distinct_values", "health", "tables"]
