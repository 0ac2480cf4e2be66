"""
Dependency injection and request parsing helpers for FastAPI routes.
"""
import hmac
import json
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError

from datalens.config import get_settings
from datalens.core.errors import InvalidRequestError, UnauthorizedError
from datalens.models.lens import DataSourceDescriptor
from datalens.services.lens_service import LensService
from datalens.sqliteDb.db import DatabaseService, get_db_service

bearer = HTTPBearer(auto_error=False)


async def require_api_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)
) -> None:
    """
    Dependency guarding lens-scoped routes.

    When ``API_TOKEN`` is configured the request must carry it as a bearer
    token; otherwise every request is allowed.

    Raises:
        UnauthorizedError: If the token is missing or wrong
    """
    expected = get_settings().api_token
    if not expected:
        return
    if credentials is None or not hmac.compare_digest(credentials.credentials, expected):
        raise UnauthorizedError("Unauthorized")


def get_lens_service(db_service: DatabaseService = Depends(get_db_service)) -> LensService:
    return LensService(db_service)


def parse_page_size(raw: Optional[str]) -> int:
    """Parse ``pageSize``; missing means the configured default."""
    settings = get_settings()
    if raw is None or raw == "":
        return settings.default_page_size
    try:
        page_size = int(raw)
    except ValueError:
        raise InvalidRequestError(f"Invalid pageSize: '{raw}'")
    if page_size < 1 or page_size > settings.max_page_size:
        raise InvalidRequestError(f"pageSize must be between 1 and {settings.max_page_size}")
    return page_size


def parse_data_source(raw: Optional[str]) -> Optional[DataSourceDescriptor]:
    """Decode the JSON ``dataSource`` override, if present."""
    if not raw:
        return None
    try:
        return DataSourceDescriptor.model_validate(json.loads(raw))
    except json.JSONDecodeError as e:
        raise InvalidRequestError(f"Invalid dataSource parameter: {e.msg}")
    except ValidationError:
        raise InvalidRequestError("Invalid dataSource parameter: expected jdbc_url, username and password")
