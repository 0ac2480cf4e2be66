"""
Loader for the static tables configuration (YAML).

Used by ``GET /config`` and as the table source for distinct-value lookups
that are not scoped to a data lens.
"""
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from datalens.config import get_settings
from datalens.core.errors import DataLensError
from datalens.core.logging import get_logger
from datalens.models.lens import TableConfig, parse_tables

logger = get_logger(__name__)


def resolve_config_path(path: Optional[str] = None) -> Path:
    config_path = Path(path or get_settings().tables_config_path)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    return config_path


def load_tables(path: Optional[str] = None) -> List[TableConfig]:
    """
    Load and validate table configurations from YAML.

    The file may hold a list of tables or a mapping with a ``tables`` key.

    Raises:
        DataLensError: If the file is missing, unreadable or invalid
    """
    config_path = resolve_config_path(path)
    try:
        with open(config_path, "r", encoding="utf-8") as file:
            raw = yaml.safe_load(file)
        return parse_tables(raw)
    except (OSError, yaml.YAMLError, ValidationError, ValueError) as e:
        logger.error(f"Error loading tables config from {config_path}: {e}")
        raise DataLensError("Failed to load configuration") from e


def find_table(name: str, path: Optional[str] = None) -> Optional[TableConfig]:
    for table in load_tables(path):
        if table.name == name:
            return table
    return None
