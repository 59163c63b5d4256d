"""
Middleware package for the store migrator.
"""
from .operator import require_operator, get_operator_id_from_request

__all__ = ['require_operator', 'get_operator_id_from_request']
