"""
Operator-visible migration log.
"""
from datetime import datetime
from ..extensions import db

LOG_LEVELS = ('info', 'debug', 'success', 'warn', 'error')


class MigrationLog(db.Model):
    """
    Audit trail entry written by MigrationLogger.

    ``action`` is the context (e.g. "Auto Coupon Migration"), ``status`` the
    level shown in the UI.
    """
    __tablename__ = 'migration_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, index=True)
    action = db.Column(db.String(100), nullable=False)
    details = db.Column(db.Text)
    status = db.Column(db.String(20), default='info')

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f'<MigrationLog {self.action} {self.status}>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'action': self.action,
            'details': self.details,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
