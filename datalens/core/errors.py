"""
Exception taxonomy for the data browsing API.

Each exception carries the HTTP status it maps to; the application-level
handlers in ``datalens.app`` render them as ``{"error": message}``.
"""


class DataLensError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(DataLensError):
    """Missing or malformed request parameters."""

    status_code = 400


class UnauthorizedError(DataLensError):
    """Missing or invalid credentials on a lens-scoped route."""

    status_code = 401


class NotFoundError(DataLensError):
    """Data lens, table or column could not be found."""

    status_code = 404


class QueryExecutionError(DataLensError):
    """Connection or SQL failure reported by the database driver.

    The driver message is passed through unredacted.
    """

    status_code = 500
