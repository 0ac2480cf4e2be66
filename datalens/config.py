"""
Configuration management using Pydantic Settings.
Loads and validates environment variables with type safety.
"""
from typing import Optional, List
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent / ".env"),  # Look for .env in datalens/ directory
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================
    # Default Warehouse Connection
    # ============================================
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_database: str = Field(default="postgres")
    db_schema: str = Field(default="public")
    db_user: str = Field(default="postgres")
    db_password: str = Field(default="postgres")

    # asyncpg ssl mode; certificates are never verified
    db_ssl_mode: str = Field(default="prefer")
    db_ca_cert: Optional[str] = Field(default=None, description="Path to CA bundle")
    db_client_cert: Optional[str] = Field(default=None, description="Path to client certificate")
    db_client_key: Optional[str] = Field(default=None, description="Path to client key")

    @field_validator("db_ssl_mode")
    @classmethod
    def validate_ssl_mode(cls, v: str) -> str:
        """Validate asyncpg ssl mode."""
        valid_modes = ["disable", "allow", "prefer", "require"]
        if v.lower() not in valid_modes:
            raise ValueError(f"Invalid ssl mode. Must be one of {valid_modes}")
        return v.lower()

    # ============================================
    # Connection Pool Configuration
    # ============================================
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=20, gt=0)
    pool_idle_timeout: float = Field(default=30.0, gt=0, description="Seconds before an idle connection is closed")
    pool_connect_timeout: float = Field(default=2.0, gt=0, description="Connection establishment timeout in seconds")
    pool_close_timeout: float = Field(default=5.0, gt=0)
    pool_cache_max_size: int = Field(default=8, gt=0, description="Maximum number of cached pools")

    # ============================================
    # Data Browsing
    # ============================================
    default_page_size: int = Field(default=100, gt=0)
    max_page_size: int = Field(default=10000, gt=0)
    distinct_values_limit: int = Field(default=1000, gt=0)
    tables_config_path: str = Field(default="./config/tables.yaml")
    metadata_db_path: str = Field(default="./data/datalens.db")

    # ============================================
    # API Configuration
    # ============================================
    api_v1_prefix: str = Field(default="/api/v1")
    project_name: str = Field(default="DataLens Navigator API")
    version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Bearer token for lens-scoped routes; unset disables the check
    api_token: Optional[str] = Field(default=None)

    # ============================================
    # CORS Configuration
    # ============================================
    cors_origins: str = Field(default="http://localhost:3000,http://localhost:5173")
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: str = Field(default="GET,POST,OPTIONS")
    cors_allow_headers: str = Field(default="*")

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def cors_methods_list(self) -> List[str]:
        """Parse CORS methods from comma-separated string."""
        return [method.strip() for method in self.cors_allow_methods.split(",")]

    # ============================================
    # Logging Configuration
    # ============================================
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: str = Field(default="./logs/datalens.log")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of {valid_levels}")
        return v.upper()


def get_settings() -> Settings:
    """
    Get settings instance.
    Use this function throughout the application to access settings.

    Note: Not cached so .env changes take effect on server reload.
    """
    return Settings()
