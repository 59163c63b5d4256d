"""
API blueprints for the store migrator.
"""
from .stores import stores_bp
from .migrations import migrations_bp

__all__ = ['stores_bp', 'migrations_bp']
