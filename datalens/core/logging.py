"""
Structured logging configuration for the DataLens service.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict
from pathlib import Path

# Extra attributes copied into the JSON payload when a record carries them
STRUCTURED_FIELDS = ("sql", "params", "execution_ms", "row_count", "pool_key", "table", "datalens_id")


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        # Query parameters may hold Decimal or datetime values
        return json.dumps(log_data, default=str)


def setup_logging() -> logging.Logger:
    """
    Configure application logging with JSON formatting.

    Returns:
        Configured root logger
    """
    # Import here to avoid circular dependency
    from datalens.config import get_settings
    settings = get_settings()

    # Get root logger
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, settings.log_level))

    # Remove existing handlers
    logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, settings.log_level))

    if settings.log_format == "json":
        console_formatter = JSONFormatter()
    else:
        console_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler, skipped when LOG_FILE is empty
    if settings.log_file:
        # Resolve relative paths against the project root (parent of datalens/)
        log_file_path = Path(settings.log_file)
        if not log_file_path.is_absolute():
            project_root = Path(__file__).parent.parent.parent
            log_file_path = (project_root / settings.log_file).resolve()

        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_file_path))
        file_handler.setLevel(getattr(logging, settings.log_level))
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
