"""
Logging setup for the store migrator.

Every module logs through ``logging.getLogger(__name__)``; this module only
configures the root handler once per process.
"""
import logging
import os
import sys

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

_configured = False


def setup_logging(level: str = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name. Defaults to the LOG_LEVEL env var, then INFO.
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # requests/urllib3 retry chatter is only useful when debugging
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    _configured = True

