"""
Custom exceptions for migration logic.

Pipelines convert most of these into ledger entries and error-list lines;
only ConfigurationError is allowed to short-circuit an entity type. Raised
from a request handler, each maps to a JSON error response through
``http_status`` and ``code``.
"""


class MigrationError(Exception):
    """Base exception for all migration errors."""

    http_status = 500

    def __init__(self, message: str, code: str = "MIGRATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(MigrationError):
    """Resource not found."""

    http_status = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class ValidationError(MigrationError):
    """Invalid input data."""

    http_status = 400

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message, "VALIDATION_ERROR")


class DuplicateError(MigrationError):
    """Resource already exists."""

    http_status = 409

    def __init__(self, resource: str, identifier):
        super().__init__(f"{resource} {identifier} is already registered", "DUPLICATE_ENTRY")


class RemoteApiError(MigrationError):
    """Error response from the remote platform API."""

    http_status = 502

    def __init__(self, message: str, status_code: int = None, body: str = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message, "REMOTE_API_ERROR")


class UnknownEntityTypeError(MigrationError):
    """Entity type has no registered pipeline."""

    http_status = 400

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Unknown entity type: {entity_type}", "UNKNOWN_ENTITY_TYPE")


class ConfigurationError(MigrationError):
    """Missing token, identical stores, or other setup problem."""

    http_status = 400

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")
