"""
Migration ledger models.

One table per entity type, all with the same shape: who migrated it, from
which store to which store, the source item's key, a few descriptive
columns for audit/search, the destination id once created, and the
attempt status.

Rows staged without a destination store (to_store_id NULL) come from the
export-only phase and are claimed by the next import for that source store.
"""
from datetime import datetime
from sqlalchemy.orm import declared_attr
from ..extensions import db

LEDGER_STATUSES = ('pending', 'success', 'failed', 'skipped')


class LedgerEntryMixin:
    """Columns and accessors shared by every ledger table."""

    # Subclasses name their key/destination columns
    entity_type = None
    source_key_column = None
    destination_column = None
    descriptive_columns = ()

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    from_store_id = db.Column(db.String(100), nullable=False, index=True)
    to_store_id = db.Column(db.String(100), nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, success, failed, skipped
    error_message = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @declared_attr
    def __table_args__(cls):
        return (
            db.UniqueConstraint(
                'user_id', 'from_store_id', 'to_store_id', cls.source_key_column,
                name=f'uq_{cls.__tablename__}_pair_key'
            ),
        )

    @classmethod
    def key_attr(cls):
        return getattr(cls, cls.source_key_column)

    @classmethod
    def destination_attr(cls):
        return getattr(cls, cls.destination_column)

    @property
    def source_key(self):
        return getattr(self, self.source_key_column)

    @source_key.setter
    def source_key(self, value):
        setattr(self, self.source_key_column, value)

    @property
    def destination_id(self):
        return getattr(self, self.destination_column)

    @destination_id.setter
    def destination_id(self, value):
        setattr(self, self.destination_column, value)

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.source_key} {self.status}>'

    def to_dict(self):
        data = {
            'id': self.id,
            'entity_type': self.entity_type,
            'user_id': self.user_id,
            'from_store_id': self.from_store_id,
            'to_store_id': self.to_store_id,
            'source_key': self.source_key,
            'destination_id': self.destination_id,
            'status': self.status,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        for column in self.descriptive_columns:
            data[column] = getattr(self, column)
        return data


class CollectionMigration(LedgerEntryMixin, db.Model):
    __tablename__ = 'collection_migrations'
    entity_type = 'collections'
    source_key_column = 'source_collection_id'
    destination_column = 'destination_collection_id'
    descriptive_columns = ('source_collection_slug', 'source_collection_name')

    source_collection_id = db.Column(db.String(100))
    source_collection_slug = db.Column(db.String(255))
    source_collection_name = db.Column(db.String(255))
    destination_collection_id = db.Column(db.String(100))


class ProductMigration(LedgerEntryMixin, db.Model):
    __tablename__ = 'product_migrations'
    entity_type = 'products'
    source_key_column = 'source_product_id'
    destination_column = 'destination_product_id'
    descriptive_columns = ('source_product_sku', 'source_product_name')

    source_product_id = db.Column(db.String(100))
    source_product_sku = db.Column(db.String(255))
    source_product_name = db.Column(db.String(255))
    destination_product_id = db.Column(db.String(100))


class ContactMigration(LedgerEntryMixin, db.Model):
    """Keyed by lowercased email; contact ids are not portable."""
    __tablename__ = 'contact_migrations'
    entity_type = 'contacts'
    source_key_column = 'contact_email'
    destination_column = 'destination_contact_id'
    descriptive_columns = ('contact_name', 'source_contact_id')

    contact_email = db.Column(db.String(255))
    contact_name = db.Column(db.String(255))
    source_contact_id = db.Column(db.String(100))
    destination_contact_id = db.Column(db.String(100))


class OrderMigration(LedgerEntryMixin, db.Model):
    __tablename__ = 'order_migrations'
    entity_type = 'orders'
    source_key_column = 'source_order_id'
    destination_column = 'destination_order_id'
    descriptive_columns = ('order_number',)

    source_order_id = db.Column(db.String(100))
    order_number = db.Column(db.String(50))
    destination_order_id = db.Column(db.String(100))


class CouponMigration(LedgerEntryMixin, db.Model):
    """Keyed by coupon code."""
    __tablename__ = 'coupon_migrations'
    entity_type = 'coupons'
    source_key_column = 'source_coupon_code'
    destination_column = 'destination_coupon_id'
    descriptive_columns = ('source_coupon_name', 'source_coupon_id')

    source_coupon_code = db.Column(db.String(100))
    source_coupon_name = db.Column(db.String(255))
    source_coupon_id = db.Column(db.String(100))
    destination_coupon_id = db.Column(db.String(100))


class DiscountRuleMigration(LedgerEntryMixin, db.Model):
    __tablename__ = 'discount_rule_migrations'
    entity_type = 'discount_rules'
    source_key_column = 'source_rule_id'
    destination_column = 'destination_rule_id'
    descriptive_columns = ('source_rule_name',)

    source_rule_id = db.Column(db.String(100))
    source_rule_name = db.Column(db.String(255))
    destination_rule_id = db.Column(db.String(100))


class MediaMigration(LedgerEntryMixin, db.Model):
    """One row per media folder; file results roll up into it."""
    __tablename__ = 'media_migrations'
    entity_type = 'media'
    source_key_column = 'folder_id'
    destination_column = 'destination_folder_id'
    descriptive_columns = ('folder_name', 'total_files', 'imported_files', 'failed_files')

    folder_id = db.Column(db.String(100))
    folder_name = db.Column(db.String(255))
    total_files = db.Column(db.Integer, default=0)
    imported_files = db.Column(db.Integer, default=0)
    failed_files = db.Column(db.JSON, default=list)
    destination_folder_id = db.Column(db.String(100))


class LoyaltyAccountMigration(LedgerEntryMixin, db.Model):
    __tablename__ = 'loyalty_account_migrations'
    entity_type = 'loyalty'
    source_key_column = 'source_account_id'
    destination_column = 'destination_account_id'
    descriptive_columns = (
        'source_contact_id', 'source_email', 'source_name',
        'source_points_balance', 'source_tier_name', 'destination_contact_id',
    )

    source_account_id = db.Column(db.String(100))
    source_contact_id = db.Column(db.String(100))
    source_email = db.Column(db.String(255))
    source_name = db.Column(db.String(255))
    source_points_balance = db.Column(db.Integer)
    source_tier_name = db.Column(db.String(100))
    destination_account_id = db.Column(db.String(100))
    destination_contact_id = db.Column(db.String(100))


LEDGER_MODELS = {
    model.entity_type: model
    for model in (
        CollectionMigration,
        ProductMigration,
        ContactMigration,
        OrderMigration,
        CouponMigration,
        DiscountRuleMigration,
        MediaMigration,
        LoyaltyAccountMigration,
    )
}
