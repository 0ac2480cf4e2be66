"""
SQLite metadata store for data sources and data lenses.
"""
import sqlite3
import json
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Optional, Dict, Any, List
import logging

from datalens.config import get_settings
from datalens.models.lens import DataLens, DataSourceDescriptor, DataSourceSummary

logger = logging.getLogger(__name__)


class DatabaseService:
    """SQLite service holding data source credentials and lens configurations.

    This service handles:
    - Data sources (JDBC URL, username, password)
    - Data lenses (named table/column configurations over a data source)

    The warehouse data itself is never stored here; it is read through the
    connection pool manager.
    """

    def __init__(self, db_path: str = None):
        """Initialize the database service.

        Args:
            db_path: Optional custom path to the SQLite database file.
                    If not provided, uses METADATA_DB_PATH from settings
        """
        self.db_path = db_path or get_settings().metadata_db_path
        self._init_database()

    def _init_database(self):
        """Create the metadata tables if they don't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = self.get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS datasources (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    datasource_name TEXT NOT NULL,
                    database_type TEXT DEFAULT 'postgresql',
                    jdbc_url TEXT NOT NULL,
                    username TEXT NOT NULL,
                    password TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS datalenses (
                    id TEXT PRIMARY KEY,
                    datasource_id TEXT NOT NULL REFERENCES datasources(id) ON DELETE CASCADE,
                    user_id TEXT,
                    datalens_name TEXT NOT NULL,
                    datalens_config TEXT, -- JSON string
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_datalenses_datasource ON datalenses(datasource_id)")

            conn.commit()
            conn.close()
            logger.info("Metadata database initialized successfully")
        except Exception as e:
            logger.error(f"Metadata database initialization failed: {e}")
            raise

    def get_connection(self) -> sqlite3.Connection:
        """Get database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Enable column access by name
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    # ============================================
    # Data Sources
    # ============================================

    def add_datasource(
        self,
        datasource_name: str,
        jdbc_url: str,
        username: str,
        password: str,
        database_type: str = "postgresql",
        user_id: Optional[str] = None,
    ) -> str:
        """Register a data source.

        Args:
            datasource_name: Friendly name shown in the UI
            jdbc_url: JDBC-style URL (jdbc:postgresql://host:port/db)
            username: Database user
            password: Database password
            database_type: Engine type label
            user_id: Owner of the data source

        Returns:
            The ID of the new data source
        """
        datasource_id = str(uuid.uuid4())
        conn = self.get_connection()
        try:
            conn.execute(
                "INSERT INTO datasources (id, user_id, datasource_name, database_type, jdbc_url, username, password) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (datasource_id, user_id, datasource_name, database_type, jdbc_url, username, password)
            )
            conn.commit()
            return datasource_id
        finally:
            conn.close()

    def get_datasource(self, datasource_id: str) -> Optional[Dict[str, Any]]:
        """Get a data source by ID, credentials included."""
        conn = self.get_connection()
        try:
            row = conn.execute("SELECT * FROM datasources WHERE id = ?", (datasource_id,)).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def get_datasource_credentials(self, datasource_id: str) -> Optional[DataSourceDescriptor]:
        """Credentials for a data source, or None if it does not exist."""
        datasource = self.get_datasource(datasource_id)
        if not datasource:
            return None
        return DataSourceDescriptor(
            jdbc_url=datasource["jdbc_url"],
            username=datasource["username"],
            password=datasource["password"],
        )

    def list_datasources(self) -> List[Dict[str, Any]]:
        """All data sources, newest first, without credentials."""
        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT id, datasource_name, database_type, created_at FROM datasources "
                "ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def delete_datasource(self, datasource_id: str) -> bool:
        """Delete a data source and its lenses."""
        conn = self.get_connection()
        try:
            cursor = conn.execute("DELETE FROM datasources WHERE id = ?", (datasource_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # ============================================
    # Data Lenses
    # ============================================

    def add_datalens(
        self,
        datasource_id: str,
        datalens_name: str,
        datalens_config: Any = None,
        user_id: Optional[str] = None,
    ) -> str:
        """Create a data lens over an existing data source.

        Raises:
            ValueError: If the data source does not exist
        """
        datalens_id = str(uuid.uuid4())
        conn = self.get_connection()
        try:
            conn.execute(
                "INSERT INTO datalenses (id, datasource_id, user_id, datalens_name, datalens_config) "
                "VALUES (?, ?, ?, ?, ?)",
                (datalens_id, datasource_id, user_id, datalens_name, json.dumps(datalens_config))
            )
            conn.commit()
            return datalens_id
        except sqlite3.IntegrityError:
            raise ValueError(f"Data source '{datasource_id}' does not exist")
        finally:
            conn.close()

    def update_datalens_config(self, datalens_id: str, datalens_config: Any) -> bool:
        conn = self.get_connection()
        try:
            cursor = conn.execute(
                "UPDATE datalenses SET datalens_config = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (json.dumps(datalens_config), datalens_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def delete_datalens(self, datalens_id: str) -> bool:
        conn = self.get_connection()
        try:
            cursor = conn.execute("DELETE FROM datalenses WHERE id = ?", (datalens_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def _row_to_datalens(self, row: sqlite3.Row) -> DataLens:
        data = dict(row)
        config = data.get("datalens_config")
        datasource = None
        if data.get("datasource_name") is not None:
            datasource = DataSourceSummary(
                id=data["datasource_id"],
                datasource_name=data["datasource_name"],
                database_type=data.get("database_type"),
                created_at=data.get("datasource_created_at"),
            )
        return DataLens(
            id=data["id"],
            datasource_id=data["datasource_id"],
            datalens_name=data["datalens_name"],
            datalens_config=json.loads(config) if config else None,
            datasource=datasource,
        )

    _LENS_SELECT = (
        "SELECT l.id, l.datasource_id, l.datalens_name, l.datalens_config, "
        "d.datasource_name, d.database_type, d.created_at AS datasource_created_at "
        "FROM datalenses l LEFT JOIN datasources d ON d.id = l.datasource_id"
    )

    def get_datalens(self, datalens_id: str) -> Optional[DataLens]:
        """Get a data lens by ID."""
        conn = self.get_connection()
        try:
            row = conn.execute(f"{self._LENS_SELECT} WHERE l.id = ?", (datalens_id,)).fetchone()
            return self._row_to_datalens(row) if row else None
        finally:
            conn.close()

    def list_datalenses(self, datasource_id: str, user_id: Optional[str] = None) -> List[DataLens]:
        """Lenses of a data source, newest first, optionally restricted to one owner."""
        query = f"{self._LENS_SELECT} WHERE l.datasource_id = ?"
        params: List[Any] = [datasource_id]
        if user_id is not None:
            query += " AND l.user_id = ?"
            params.append(user_id)
        query += " ORDER BY l.created_at DESC, l.rowid DESC"

        conn = self.get_connection()
        try:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_datalens(row) for row in rows]
        finally:
            conn.close()


@lru_cache()
def get_db_service() -> DatabaseService:
    """Get the singleton metadata store.

    This function is used as a FastAPI dependency so all route handlers
    share the same service instance.

    Returns:
        DatabaseService: The global database service instance
    """
    return DatabaseService()
