"""
Source-to-destination identifier maps for one migration run.
"""
import logging
from collections import defaultdict
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# Namespaces used across pipelines
COLLECTION = 'collection'
COLLECTION_SLUG = 'collection_slug'
PRODUCT = 'product'
CONTACT = 'contact'
MEMBER = 'member'


class IdRemapper:
    """
    In-memory remap tables, keyed by entity namespace.

    Pipelines record a mapping as each item lands in the destination; later
    pipelines in the same run translate foreign keys through it. Maps from
    earlier runs are loaded from the ledger with ``seed_from_ledger``.
    """

    def __init__(self):
        self._maps: Dict[str, Dict[str, str]] = defaultdict(dict)

    def record_mapping(self, entity_type: str, source_key, destination_id) -> None:
        if source_key in (None, '') or destination_id in (None, ''):
            return
        self._maps[entity_type][str(source_key)] = str(destination_id)

    def translate(self, entity_type: str, source_key) -> Optional[str]:
        if source_key in (None, ''):
            return None
        return self._maps.get(entity_type, {}).get(str(source_key))

    def known_destination(self, entity_type: str, destination_id) -> bool:
        """True when ``destination_id`` is already a mapped destination value."""
        return str(destination_id) in self._maps.get(entity_type, {}).values()

    def seed_from_ledger(self, entity_type: str, ledger, key_prefix: Optional[str] = None) -> int:
        """Load successful mappings from a ledger; returns how many were added."""
        added = 0
        for source_key, destination_id in ledger.list_successful_destination_ids(key_prefix).items():
            if self.translate(entity_type, source_key) is None:
                self.record_mapping(entity_type, source_key, destination_id)
                added += 1
        if added:
            logger.debug(f"Seeded {added} {entity_type} mapping(s) from {ledger.model.__tablename__}")
        return added

    def mapping(self, entity_type: str) -> Dict[str, str]:
        return dict(self._maps.get(entity_type, {}))

    def __len__(self):
        return sum(len(m) for m in self._maps.values())
