"""
Migration ledger service.

The ledger is the only state shared between migration runs: every item gets
a pending row before any remote write, and the row is resolved to success,
failed or skipped once the remote call returns. Re-running a pipeline reads
these rows to skip finished work.
"""
import logging
from typing import Dict, Optional, Set, Type

from sqlalchemy import case, func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.ledger import LedgerEntryMixin, LEDGER_STATUSES

logger = logging.getLogger(__name__)


class MigrationLedger:
    """
    Ledger access for one entity table and one (operator, from, to) pair.

    Args:
        model: Ledger model class (e.g. CouponMigration)
        operator_id: User running the migration
        from_store_id: Source store instance id
        to_store_id: Destination store instance id (None while staging an export)
    """

    def __init__(
        self,
        model: Type[LedgerEntryMixin],
        operator_id: int,
        from_store_id: str,
        to_store_id: Optional[str]
    ):
        self.model = model
        self.operator_id = operator_id
        self.from_store_id = from_store_id
        self.to_store_id = to_store_id

    def _pair_query(self):
        return self.model.query.filter_by(
            user_id=self.operator_id,
            from_store_id=self.from_store_id,
            to_store_id=self.to_store_id,
        )

    def find_by_key(self, key) -> Optional[LedgerEntryMixin]:
        """Lookup by the natural/composite key within this store pair."""
        return self._pair_query().filter(self.model.key_attr() == key).first()

    def upsert_pending(self, key, **fields) -> LedgerEntryMixin:
        """
        Create or fetch the entry for ``key``.

        New entries start pending. Existing failed/skipped entries are
        re-armed to pending; success entries come back untouched so the
        caller can skip them. A duplicate-key race on insert falls back to
        the row the other writer created.
        """
        entry = self.find_by_key(key)
        if entry is None:
            entry = self.model(
                user_id=self.operator_id,
                from_store_id=self.from_store_id,
                to_store_id=self.to_store_id,
                status='pending',
            )
            entry.source_key = key
            self._apply_fields(entry, fields)
            db.session.add(entry)
            try:
                db.session.commit()
                return entry
            except IntegrityError:
                db.session.rollback()
                logger.info(f"Ledger race on {self.model.__tablename__} key={key}; reusing existing row")
                entry = self.find_by_key(key)
                if entry is None:
                    raise

        return self._arm(entry, fields)

    def _arm(self, entry: LedgerEntryMixin, fields: dict) -> LedgerEntryMixin:
        if entry.status == 'success':
            return entry
        self._apply_fields(entry, fields)
        if entry.status in ('failed', 'skipped'):
            entry.status = 'pending'
            entry.error_message = None
        db.session.commit()
        return entry

    @staticmethod
    def _apply_fields(entry: LedgerEntryMixin, fields: dict) -> None:
        for name, value in fields.items():
            if value is not None:
                setattr(entry, name, value)

    def mark_result(
        self,
        entry_or_key,
        status: str,
        destination_id: Optional[str] = None,
        error_message: Optional[str] = None,
        **fields
    ) -> LedgerEntryMixin:
        """
        Resolve an entry after its remote call.

        Any prior status may transition, except that a success entry only
        ever has its destination id corrected.
        """
        if status not in LEDGER_STATUSES:
            raise ValueError(f"Invalid ledger status: {status}")

        if isinstance(entry_or_key, LedgerEntryMixin):
            entry = entry_or_key
        else:
            entry = self.find_by_key(entry_or_key) or self.upsert_pending(entry_or_key)

        if entry.to_store_id is None:
            entry.to_store_id = self.to_store_id

        if entry.status == 'success':
            if status != 'success':
                logger.debug(f"Ignoring {status} for finished {entry!r}")
            elif destination_id and destination_id != entry.destination_id:
                logger.info(f"Correcting destination drift on {entry!r}: {entry.destination_id} -> {destination_id}")
                entry.destination_id = destination_id
        else:
            entry.status = status
            entry.error_message = None if status == 'success' else error_message
            if destination_id is not None:
                entry.destination_id = destination_id
            self._apply_fields(entry, fields)

        db.session.commit()
        return entry

    def list_successful_destination_ids(self, key_prefix: Optional[str] = None) -> Dict[str, str]:
        """Map of source key -> destination id for every success entry in this pair."""
        query = self._pair_query().filter(
            self.model.status == 'success',
            self.model.destination_attr().isnot(None),
        )
        if key_prefix:
            query = query.filter(self.model.key_attr().startswith(key_prefix))
        return {row.source_key: row.destination_id for row in query.all()}

    def destination_ids(self) -> Set[str]:
        """Destination ids already produced for this pair."""
        return set(self.list_successful_destination_ids().values())

    # ==================== CLAIM / RESOLVE ====================

    def claim_pending(self, key) -> Optional[LedgerEntryMixin]:
        """
        Lock the earliest pending row for this source store that can serve ``key``.

        Candidate rows match the key exactly or have no key yet, and belong to
        this destination or to no destination (staged during an export).
        Exact key matches win; ties break on creation order.
        """
        key_attr = self.model.key_attr()
        query = self.model.query.filter(
            self.model.user_id == self.operator_id,
            self.model.from_store_id == self.from_store_id,
            self.model.status == 'pending',
            or_(self.model.to_store_id == self.to_store_id, self.model.to_store_id.is_(None)),
        )
        if key is not None:
            query = query.filter(or_(key_attr == key, key_attr.is_(None))).order_by(
                case((key_attr == key, 0), else_=1)
            )
        else:
            query = query.filter(key_attr.is_(None))

        return query.order_by(
            self.model.created_at.asc(),
            self.model.id.asc(),
        ).with_for_update().first()

    def resolve_target(self, claimed: Optional[LedgerEntryMixin], key) -> Optional[LedgerEntryMixin]:
        """
        Pick the authoritative row for ``key``.

        A row already bound to this destination wins; a different pending
        row that was claimed for the same item is retired as merged.
        """
        existing = self.find_by_key(key) if key is not None else None
        if existing is not None:
            if claimed is not None and claimed.id != existing.id and claimed.status == 'pending':
                claimed.status = 'skipped'
                claimed.error_message = f'Merged into existing migration row id {existing.id}.'
                db.session.commit()
            return existing

        if claimed is not None:
            claimed.to_store_id = self.to_store_id
            if claimed.source_key is None:
                claimed.source_key = key
            db.session.commit()
        return claimed

    def claim(self, key, **fields) -> LedgerEntryMixin:
        """
        Claim-then-resolve, falling back to a fresh pending row.

        This is the entry point pipelines use per item; it also picks up
        rows staged without a destination store.
        """
        entry = self.resolve_target(self.claim_pending(key), key)
        if entry is None:
            return self.upsert_pending(key, **fields)
        return self._arm(entry, fields)

    # ==================== REPORTING ====================

    def counts(self) -> Dict[str, int]:
        """Status histogram for this pair."""
        rows = db.session.query(self.model.status, func.count(self.model.id)).filter(
            self.model.user_id == self.operator_id,
            self.model.from_store_id == self.from_store_id,
            self.model.to_store_id == self.to_store_id,
        ).group_by(self.model.status).all()
        counts = {status: 0 for status in LEDGER_STATUSES}
        counts.update({status: count for status, count in rows})
        return counts

    def entries(self, status: Optional[str] = None, limit: int = 500):
        query = self._pair_query()
        if status:
            query = query.filter_by(status=status)
        return query.order_by(self.model.created_at.asc(), self.model.id.asc()).limit(limit).all()
