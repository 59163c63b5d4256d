"""
Collections pipeline.
"""
import logging

from .base import BasePipeline, RunContext
from ..adapters.collections import ALL_PRODUCTS_IDS, CollectionAdapter, is_all_products
from ..id_remapper import COLLECTION, COLLECTION_SLUG
from ...models import CollectionMigration
from ...utils.payloads import strip_keys

logger = logging.getLogger(__name__)

STRIP_FIELDS = ('id', 'numberOfProducts', 'slug')


class CollectionPipeline(BasePipeline):
    """
    Copy collections in source list order.

    Slugs are regenerated by the destination, so later pipelines resolve
    collections through both the ``collection`` (id) and ``collection_slug``
    maps. The system "All Products" collection is never created; it maps to
    the destination's own.
    """

    entity_type = 'collections'
    label = 'Collections'
    model = CollectionMigration
    adapter_classes = {'collections': CollectionAdapter}

    def migrate(self, ctx: RunContext) -> None:
        source = self.limit(ctx, self.collections.list_all(ctx.from_token))
        destination = list(self.collections.list_all(ctx.to_token))
        self.log.info(self.context, f'Fetched {len(source)} source and {len(destination)} destination collection(s).')

        self._by_name = {}
        self._by_slug = {}
        system_id = ALL_PRODUCTS_IDS[0]
        for collection in destination:
            if is_all_products(collection):
                system_id = collection.get('id') or system_id
                continue
            self._index(collection, collection.get('id'))

        items = []
        for collection in source:
            if is_all_products(collection):
                self._record(collection, system_id)
                continue
            items.append(collection)

        self.process_all(ctx, items, self.migrate_one)

    def _index(self, collection: dict, destination_id: str) -> None:
        name = (collection.get('name') or '').strip().lower()
        slug = (collection.get('slug') or '').strip().lower()
        if name:
            self._by_name.setdefault(name, destination_id)
        if slug:
            self._by_slug.setdefault(slug, destination_id)

    def _record(self, collection: dict, destination_id: str) -> None:
        self.remapper.record_mapping(COLLECTION, collection.get('id'), destination_id)
        self.remapper.record_mapping(COLLECTION_SLUG, collection.get('slug'), destination_id)

    def migrate_one(self, ctx: RunContext, collection: dict) -> None:
        source_id = collection.get('id')
        name = collection.get('name')
        entry = self.stage(
            ctx, source_id,
            source_collection_slug=collection.get('slug'),
            source_collection_name=name,
        )
        if self.skip_finished(ctx, entry):
            self._record(collection, entry.destination_id)
            return
        if self.skip_dry_run(ctx, entry):
            return

        existing_id = (
            self._by_name.get((name or '').strip().lower())
            or self._by_slug.get((collection.get('slug') or '').strip().lower())
        )
        if existing_id:
            self.succeed(ctx, entry, existing_id)
            self._record(collection, existing_id)
            self.log.info(self.context, f"Linked '{name}' to existing destination collection {existing_id}.")
            return

        result = self.collections.create(ctx.to_token, strip_keys(collection, STRIP_FIELDS))
        if not result['ok']:
            self.fail(ctx, entry, result['error'])
            return

        self.succeed(ctx, entry, result['id'])
        self._record(collection, result['id'])
        self._index(collection, result['id'])
        self.log.success(self.context, f"Created '{name}' -> {result['id']}.")
