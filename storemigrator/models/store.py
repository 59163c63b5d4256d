"""
Store credential record.
A store is addressed by its platform instance id; tokens are minted per
instance by the TokenProvider.
"""
from datetime import datetime
from ..extensions import db


class MigrationStore(db.Model):
    """A connected store an operator can migrate from or to."""
    __tablename__ = 'migration_stores'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    instance_id = db.Column(db.String(100), nullable=False)
    instance_token = db.Column(db.Text)  # Refresh token from app install, if any
    store_name = db.Column(db.String(255))
    store_logo = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'instance_id', name='uq_user_store_instance'),
    )

    @property
    def label(self) -> str:
        return self.store_name or self.instance_id

    def __repr__(self):
        return f'<MigrationStore {self.label}>'

    def to_dict(self, include_secrets=False):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'instance_id': self.instance_id,
            'store_name': self.store_name,
            'store_logo': self.store_logo,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_secrets:
            data['instance_token'] = self.instance_token
        return data
