"""
Utility modules for the store migrator.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    unauthorized,
    not_found,
    internal_error
)
from .exceptions import (
    MigrationError,
    NotFoundError,
    ValidationError,
    DuplicateError,
    RemoteApiError,
    UnknownEntityTypeError,
    ConfigurationError
)
