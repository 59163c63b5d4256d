"""
Configuration management for the store migrator.
"""
import os
from dotenv import load_dotenv

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Remote platform API
    PLATFORM_API_BASE = os.getenv('PLATFORM_API_BASE', 'https://www.wixapis.com')
    PLATFORM_OAUTH_URL = os.getenv('PLATFORM_OAUTH_URL', f'{PLATFORM_API_BASE}/oauth2/token')
    PLATFORM_APP_ID = os.getenv('PLATFORM_APP_ID', '')
    PLATFORM_APP_SECRET = os.getenv('PLATFORM_APP_SECRET', '')

    # HTTP policy for every remote call (urllib3 Retry on 429/5xx)
    PLATFORM_HTTP_TIMEOUT = int(os.getenv('PLATFORM_HTTP_TIMEOUT', '60'))
    PLATFORM_MAX_RETRIES = int(os.getenv('PLATFORM_MAX_RETRIES', '3'))
    PLATFORM_RETRY_BACKOFF = float(os.getenv('PLATFORM_RETRY_BACKOFF', '0.5'))
    PLATFORM_RETRY_JITTER = float(os.getenv('PLATFORM_RETRY_JITTER', '0.4'))

    # Operator used when the caller does not identify one
    MIGRATION_DEFAULT_OPERATOR_ID = int(os.getenv('MIGRATION_DEFAULT_OPERATOR_ID', '1'))

    # Origins allowed to drive the migration UI
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',')
        if origin.strip()
    ]


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    ENV_NAME = 'development'
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///storemigrator_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    ENV_NAME = 'production'
    DEBUG = False

    # SQLAlchemy requires postgresql:// not postgres://
    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,  # Verify connections before using
    }

    _secret_key = os.getenv('SECRET_KEY', '')

    @classmethod
    def validate_secret_key(cls) -> str:
        """
        Validate SECRET_KEY in production environment.

        Raises:
            RuntimeError: If SECRET_KEY is missing, empty, or contains unsafe values
        """
        if not cls._secret_key:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY environment variable is not set!\n"
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        lower_key = cls._secret_key.lower()
        for pattern in ['dev', 'change', 'default', 'test', 'secret', 'password']:
            if pattern in lower_key:
                raise RuntimeError(
                    f"CRITICAL: SECRET_KEY contains '{pattern}' which suggests it's not secure!"
                )

        if len(cls._secret_key) < 32:
            raise RuntimeError("CRITICAL: SECRET_KEY is too short (minimum 32 characters required)!")

        return cls._secret_key

    SECRET_KEY = _secret_key  # Validated at app startup


class TestingConfig(BaseConfig):
    """Testing configuration."""
    ENV_NAME = 'testing'
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    PLATFORM_APP_ID = 'test-app-id'
    PLATFORM_APP_SECRET = 'test-app-secret'
    PLATFORM_MAX_RETRIES = 0


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Args:
        config_name: The configuration environment name

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secret_key()
