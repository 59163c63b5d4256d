"""
Operator identification middleware.

Every ledger row and log entry is scoped to the operator running the
migration. The operator is taken from the X-Operator-Id header; outside
production a missing header falls back to MIGRATION_DEFAULT_OPERATOR_ID.
"""
from functools import wraps
from typing import Optional

from flask import current_app, g, request

from ..utils.errors import ErrorCode, bad_request, unauthorized

OPERATOR_HEADER = 'X-Operator-Id'


def get_operator_id_from_request() -> Optional[str]:
    """Raw operator id from the header, or None."""
    value = request.headers.get(OPERATOR_HEADER, '').strip()
    return value or None


def require_operator(f):
    """
    Decorator to require an operator for migration endpoints.

    Sets g.operator_id.

    Usage:
        @require_operator
        def my_endpoint():
            operator_id = g.operator_id
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = get_operator_id_from_request()

        if raw is None:
            if current_app.config.get('ENV_NAME') == 'production':
                return unauthorized('Missing X-Operator-Id header')
            g.operator_id = int(current_app.config['MIGRATION_DEFAULT_OPERATOR_ID'])
            return f(*args, **kwargs)

        try:
            g.operator_id = int(raw)
        except ValueError:
            return bad_request('X-Operator-Id must be an integer', ErrorCode.VALIDATION_ERROR)

        return f(*args, **kwargs)

    return decorated_function
