"""
Lens lookup: resolves a data lens and one of its tables from the metadata store.
"""
from typing import Optional, Tuple

from pydantic import ValidationError

from datalens.core.errors import DataLensError, NotFoundError
from datalens.core.logging import get_logger
from datalens.models.lens import DataLens, DataSourceDescriptor, TableConfig
from datalens.sqliteDb.db import DatabaseService

logger = get_logger(__name__)


class LensService:
    """Reads lens configurations and their data source credentials."""

    def __init__(self, db_service: DatabaseService):
        self.db_service = db_service

    def get_lens(self, datalens_id: str) -> DataLens:
        lens = self.db_service.get_datalens(datalens_id)
        if lens is None or lens.datalens_config is None:
            raise NotFoundError("DataLens configuration not found")
        return lens

    def get_table(self, datalens_id: str, table_name: str) -> Tuple[DataLens, TableConfig]:
        """
        Find ``table_name`` inside the lens configuration.

        Raises:
            NotFoundError: If the lens or the table within it does not exist
            DataLensError: If the stored configuration cannot be parsed
        """
        lens = self.get_lens(datalens_id)
        try:
            table = lens.find_table(table_name)
        except (ValidationError, ValueError) as e:
            logger.error(f"Invalid configuration for DataLens {datalens_id}: {e}")
            raise DataLensError("Invalid DataLens configuration") from e
        if table is None:
            raise NotFoundError("Table not found in DataLens configuration")
        return lens, table

    def get_credentials(self, lens: DataLens) -> Optional[DataSourceDescriptor]:
        """Stored credentials of the lens's data source, if registered."""
        return self.db_service.get_datasource_credentials(lens.datasource_id)
