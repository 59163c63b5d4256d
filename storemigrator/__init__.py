"""
Store Migrator
Flask application factory
"""
import os
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()

    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Configure CORS - allow the migration UI origins
    CORS(
        app,
        origins=app.config['CORS_ORIGINS'],
        supports_credentials=True,
        allow_headers=['Content-Type', 'Authorization', 'X-Operator-Id'],
    )

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'store-migrator'}

    logger.debug(f'App created with {config_name} config')
    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.stores import stores_bp
    from .api.migrations import migrations_bp

    app.register_blueprint(stores_bp, url_prefix='/api/stores')
    app.register_blueprint(migrations_bp, url_prefix='/api/migrations')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.errors import ErrorCode, error_response, internal_error, not_found as not_found_response
    from .utils.exceptions import MigrationError

    @app.errorhandler(MigrationError)
    def migration_error(error):
        return error_response(error.message, error.code, error.http_status, log_error=error.http_status >= 500)

    @app.errorhandler(400)
    def bad_request(error):
        return {'error': {'message': str(error), 'code': ErrorCode.INVALID_REQUEST.value}}, 400

    @app.errorhandler(404)
    def not_found(error):
        return not_found_response(str(error))

    @app.errorhandler(500)
    def server_error(error):
        return internal_error('Internal server error', details={'error': str(error)})
