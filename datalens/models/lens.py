"""
Pydantic models for data lens configuration and the data browsing API.
"""
import re
from typing import Annotated, Optional, List, Dict, Any
from pydantic import AfterValidator, BaseModel, Field, ConfigDict, field_validator

from datalens.services.column_types import normalize_type

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def _check_identifier(value: str) -> str:
    if not IDENTIFIER_PATTERN.match(value):
        raise ValueError(f"'{value}' is not a valid SQL identifier")
    return value


Identifier = Annotated[str, AfterValidator(_check_identifier)]


# ============================================
# Lens Configuration
# ============================================

class Column(BaseModel):
    """A displayed column and its logical type tag."""
    name: Identifier
    type: str = Field(default="text", description="text, number, datetime or boolean")

    @field_validator("type", mode="before")
    @classmethod
    def normalize_column_type(cls, v: Any) -> str:
        """Accept PostgreSQL type names such as ``integer`` or ``character varying``."""
        return normalize_type(v)


class TableConfig(BaseModel):
    """Columns shown for one table and the key used for keyset pagination."""
    name: Identifier
    sort_column: Identifier
    key_column: Optional[str] = None
    columns: List[Column] = Field(default_factory=list)

    def get_column(self, name: str) -> Optional[Column]:
        """Return the configured column called ``name``, if any."""
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def column_types(self) -> Dict[str, str]:
        return {column.name: column.type for column in self.columns}


def parse_tables(config: Any) -> List[TableConfig]:
    """
    Parse a lens configuration into table configs.

    Accepts either a bare list of tables or an object with a ``tables`` list.
    """
    if config is None:
        return []
    if isinstance(config, dict):
        config = config.get("tables") or []
    if not isinstance(config, list):
        raise ValueError("Lens configuration must be a list of tables or an object with 'tables'")
    return [TableConfig.model_validate(table) for table in config]


class DataSourceDescriptor(BaseModel):
    """Credentials for a user supplied PostgreSQL connection."""
    jdbc_url: str = Field(..., min_length=1)
    username: str
    password: str = ""


class DataSourceSummary(BaseModel):
    """Data source details embedded in lens listings (no credentials)."""
    id: str
    datasource_name: str
    database_type: Optional[str] = None
    created_at: Optional[str] = None


class DataLens(BaseModel):
    """A named set of table configurations over one data source."""
    id: str
    datasource_id: str
    datalens_name: str
    datalens_config: Any = None
    datasource: Optional[DataSourceSummary] = None

    @property
    def tables(self) -> List[TableConfig]:
        return parse_tables(self.datalens_config)

    def find_table(self, name: str) -> Optional[TableConfig]:
        for table in self.tables:
            if table.name == name:
                return table
        return None


class DataLensListResponse(BaseModel):
    lenses: List[DataLens]


# ============================================
# Data Browsing
# ============================================

class PageRequest(BaseModel):
    """Validated parameters of a data page request."""
    table: str
    page_size: int = Field(default=100, gt=0)
    sort_field: Optional[str] = None
    sort_direction: str = "asc"
    filters: Dict[str, Any] = Field(default_factory=dict)
    last_key: Optional[str] = None

    @field_validator("sort_direction")
    @classmethod
    def validate_sort_direction(cls, v: str) -> str:
        v = (v or "asc").lower()
        if v not in ("asc", "desc"):
            raise ValueError("sortDirection must be 'asc' or 'desc'")
        return v

    @property
    def cursor(self) -> Optional[str]:
        """The pagination cursor, ignoring empty values and the 'undefined' sentinel."""
        if not self.last_key or self.last_key == "undefined":
            return None
        return self.last_key


class QueryInfo(BaseModel):
    """Generated SQL echoed back to the caller."""
    sql: str
    params: List[Any]


class DataPage(BaseModel):
    """One page of rows plus the cursor for the next page."""
    model_config = ConfigDict(populate_by_name=True)

    data: List[Dict[str, Any]]
    has_more: bool = Field(..., alias="hasMore")
    last_key: Optional[str] = Field(default=None, alias="lastKey")
    total_count: int = Field(..., alias="totalCount")
    query: QueryInfo


class ConnectionTestRequest(BaseModel):
    """Payload for testing a JDBC connection."""
    jdbc_url: Optional[str] = Field(default=None, alias="jdbcUrl")
    username: Optional[str] = None
    password: Optional[str] = None


class TablesConfigResponse(BaseModel):
    tables: List[TableConfig]
