"""
CLI commands for the store migrator.

Usage:
    flask migration run --from-store SRC --to-store DST            # Migrate everything
    flask migration run --from-store SRC --to-store DST -e coupons # One entity type
    flask migration entities                                       # Dependency order
    flask migration ledger --entity coupons --from-store SRC --to-store DST
"""
from .migrate import init_app as init_migration_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_migration_commands(app)
