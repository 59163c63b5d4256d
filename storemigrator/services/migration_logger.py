"""
Structured migration logger.

Writes operator-visible progress to the migration_logs table and mirrors
every entry to the stdlib logger. Never used for control flow.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models.migration_log import MigrationLog, LOG_LEVELS

logger = logging.getLogger(__name__)

_PYTHON_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'success': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}


class MigrationLogger:
    """
    Audit logger bound to one operator.

    Usage:
        log = MigrationLogger(operator_id=1)
        log.log('Auto Coupon Migration', 'Fetched 12 coupon(s).', 'info')
    """

    def __init__(self, operator_id: Optional[int] = None, persist: bool = True):
        self.operator_id = operator_id
        self.persist = persist

    def bind(self, operator_id: int) -> 'MigrationLogger':
        """Same sink, different operator."""
        return MigrationLogger(operator_id=operator_id, persist=self.persist)

    def log(self, context: str, message: str, level: str = 'info') -> None:
        level = level if level in LOG_LEVELS else 'info'
        logger.log(_PYTHON_LEVELS[level], '[%s] %s', context, message)

        if not self.persist:
            return

        try:
            db.session.add(MigrationLog(
                user_id=self.operator_id,
                action=context[:100],
                details=message,
                status=level,
            ))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception('Failed to persist migration log entry for %s', context)

    def debug(self, context: str, message: str) -> None:
        self.log(context, message, 'debug')

    def info(self, context: str, message: str) -> None:
        self.log(context, message, 'info')

    def success(self, context: str, message: str) -> None:
        self.log(context, message, 'success')

    def warn(self, context: str, message: str) -> None:
        self.log(context, message, 'warn')

    def error(self, context: str, message: str) -> None:
        self.log(context, message, 'error')
