"""
Services for the store migrator.
"""
from .ledger_service import MigrationLedger
from .id_remapper import IdRemapper
from .migration_logger import MigrationLogger
from .platform_client import PlatformClient, ApiResponse
from .token_provider import TokenProvider
from .orchestrator import (
    DEPENDENCY_ORDER,
    MigrationOrchestrator,
    MigrationSummary,
    resolve_entity_types,
)

__all__ = [
    'MigrationLedger',
    'IdRemapper',
    'MigrationLogger',
    'PlatformClient',
    'ApiResponse',
    'TokenProvider',
    'DEPENDENCY_ORDER',
    'MigrationOrchestrator',
    'MigrationSummary',
    'resolve_entity_types',
]
