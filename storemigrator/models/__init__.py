"""
Database models for the store migrator.
"""
from .store import MigrationStore
from .migration_log import MigrationLog, LOG_LEVELS
from .ledger import (
    LEDGER_STATUSES,
    LEDGER_MODELS,
    LedgerEntryMixin,
    CollectionMigration,
    ProductMigration,
    ContactMigration,
    OrderMigration,
    CouponMigration,
    DiscountRuleMigration,
    MediaMigration,
    LoyaltyAccountMigration,
)

__all__ = [
    'MigrationStore',
    'MigrationLog',
    'LOG_LEVELS',
    'LEDGER_STATUSES',
    'LEDGER_MODELS',
    'LedgerEntryMixin',
    'CollectionMigration',
    'ProductMigration',
    'ContactMigration',
    'OrderMigration',
    'CouponMigration',
    'DiscountRuleMigration',
    'MediaMigration',
    'LoyaltyAccountMigration',
]
