"""
Flask extensions initialization.
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Ledger, store and log tables
db = SQLAlchemy()

# Alembic migrations (flask db upgrade)
migrate = Migrate()
