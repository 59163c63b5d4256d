"""
Coupons pipeline.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from .base import BasePipeline, RunContext
from ..adapters.coupons import CouponAdapter, normalize_code
from ..id_remapper import COLLECTION, PRODUCT
from ..ledger_service import MigrationLedger
from ...models import CollectionMigration, CouponMigration, ProductMigration
from ...utils.extraction import oldest_first

logger = logging.getLogger(__name__)

# Scope group name -> remap namespace
SCOPE_NAMESPACES = {'product': PRODUCT, 'collection': COLLECTION}
RECHECK_STATUSES = (400, 409)


class ScopeMappingError(Exception):
    """A product/collection scoped coupon whose target has no destination id."""

    def __init__(self, reason: str, wanted: Optional[str] = None):
        self.reason = reason
        self.wanted = wanted
        message = f'Entity mapping failed ({reason})'
        if wanted:
            message += f' for source entityId={wanted}'
        super().__init__(message)


def default_start_time() -> str:
    return datetime.utcnow().strftime('%Y-%m-%dT%H:%M:%S.000Z')


class CouponPipeline(BasePipeline):
    """
    Copy coupons, remapping product/collection scopes.

    Scoped coupons need the products and collections ledgers for the same
    store pair; a scope that cannot be remapped fails the coupon instead of
    creating it with a dangling reference. Coupons are created once and never
    updated afterwards.
    """

    entity_type = 'coupons'
    label = 'Coupons'
    model = CouponMigration
    adapter_classes = {'coupons': CouponAdapter}

    def migrate(self, ctx: RunContext) -> None:
        for namespace, model in ((PRODUCT, ProductMigration), (COLLECTION, CollectionMigration)):
            ledger = MigrationLedger(model, ctx.operator_id, ctx.from_store_id, ctx.to_store_id)
            self.remapper.seed_from_ledger(namespace, ledger)

        coupons = oldest_first(self.limit(ctx, self.coupons.list_all(ctx.from_token)))
        self._destination_by_code = self.coupons.index_by_code(ctx.to_token)
        self.log.info(
            self.context,
            f'Fetched {len(coupons)} source coupon(s); {len(self._destination_by_code)} code(s) already on destination.'
        )

        self.process_all(ctx, coupons, self.migrate_one)

    def map_scope(self, specification: dict) -> dict:
        """
        Return a copy of ``specification`` with its scope pointing at
        destination ids.

        Raises:
            ScopeMappingError: product/collection scope without a mapping
        """
        spec = dict(specification)
        if spec.get('freeShipping'):
            spec.pop('scope', None)
            return spec

        scope = dict(spec.get('scope') or {})
        group = dict(scope.get('group') or {})
        if 'entityId' in group and group['entityId'] in (None, ''):
            group.pop('entityId')
        if group:
            scope['group'] = group
            spec['scope'] = scope

        namespace = SCOPE_NAMESPACES.get(group.get('name'))
        if namespace is None:
            return spec

        entity_id = group.get('entityId')
        if entity_id:
            destination_id = self.remapper.translate(namespace, entity_id)
            if destination_id is None and self.remapper.known_destination(namespace, entity_id):
                destination_id = entity_id
            if destination_id:
                group['entityId'] = str(destination_id)
                return spec
        raise ScopeMappingError(f"{group['name']}-not-found", entity_id)

    def migrate_one(self, ctx: RunContext, coupon: dict) -> None:
        specification = coupon.get('specification') or {}
        code = (specification.get('code') or '').strip()
        if not code or not specification.get('name'):
            ctx.result.skipped += 1
            self.log.warn(self.context, f"Coupon {coupon.get('id') or '?'} has no name or code; skipped.")
            return

        entry = self.stage(ctx, code, source_coupon_name=specification.get('name'), source_coupon_id=coupon.get('id'))
        if self.skip_finished(ctx, entry):
            return

        try:
            spec = self.map_scope(specification)
        except ScopeMappingError as e:
            self.fail(ctx, entry, str(e))
            return
        if not spec.get('startTime'):
            spec['startTime'] = default_start_time()

        if self.skip_dry_run(ctx, entry):
            return

        existing_id = self._existing_destination_id(normalize_code(code))
        if existing_id:
            self.succeed(ctx, entry, existing_id)
            self.log.info(self.context, f'Coupon {code} already exists on destination; linked to {existing_id}.')
            return

        result = self.coupons.create(ctx.to_token, spec)
        if not result['ok']:
            linked, destination_id = self._recheck(ctx, code, result)
            if linked:
                self.succeed(ctx, entry, destination_id)
                self.log.info(self.context, f'Coupon {code} was created concurrently; linked to {destination_id}.')
            else:
                self.fail(ctx, entry, result['error'] or f"HTTP {result.get('status')}")
            return

        self.succeed(ctx, entry, result['id'])
        self._destination_by_code[normalize_code(code)] = {'id': result['id']}
        self.log.success(self.context, f'Created coupon {code} -> {result["id"]}.')

    def _existing_destination_id(self, normalized_code: str) -> Optional[str]:
        existing = self._destination_by_code.get(normalized_code)
        return existing.get('id') if existing else None

    def _recheck(self, ctx: RunContext, code: str, result: dict) -> Tuple[bool, Optional[str]]:
        """After a 400/409, look the code up again in case another writer created it."""
        if result.get('status') not in RECHECK_STATUSES:
            return False, None
        found = self.coupons.find_by_natural_key(ctx.to_token, code)
        if found and found.get('id'):
            self._destination_by_code[normalize_code(code)] = found
            return True, found['id']
        return False, None
