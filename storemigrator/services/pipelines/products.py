"""
Products pipeline.
"""
import logging
from typing import Dict, List, Optional

from .base import BasePipeline, RunContext
from ..adapters.collections import CollectionAdapter, is_all_products
from ..adapters.products import ProductAdapter, ZERO_VARIANT_ID
from ..id_remapper import COLLECTION, COLLECTION_SLUG, PRODUCT
from ..ledger_service import MigrationLedger
from ...models import CollectionMigration, ProductMigration
from ...utils.payloads import keep_keys, slugify

logger = logging.getLogger(__name__)

ALLOWED_FIELDS = (
    'name', 'slug', 'visible', 'productType', 'description', 'sku', 'media',
    'manageVariants', 'productOptions', 'additionalInfoSections', 'ribbon', 'brand',
    'infoSections', 'modifiers', 'price', 'priceData', 'discount', 'weight', 'stock',
    'costAndProfitData', 'customTextFields',
)
PRODUCT_TYPES = ('physical', 'digital')


def sanitize_product(product: dict) -> dict:
    """
    Build a create payload from a source product.

    Only allow-listed fields survive, the type is coerced to physical or
    digital, an empty SKU is dropped and the slug is rebuilt from the name.
    """
    payload = keep_keys(product, ALLOWED_FIELDS)

    product_type = str(payload.get('productType') or '').lower()
    payload['productType'] = product_type if product_type in PRODUCT_TYPES else 'physical'

    sku = payload.get('sku')
    if sku is None or not str(sku).strip():
        payload.pop('sku', None)

    payload['slug'] = slugify(product.get('slug') or product.get('name') or '') or slugify(product.get('id') or 'product')
    return payload


def index_inventory_by_sku(products: List[dict], inventory_items: List[dict]) -> Dict[str, dict]:
    """SKU -> source inventory item; the first product with a SKU wins."""
    sku_by_product = {}
    for product in products:
        sku = (product.get('sku') or '').strip()
        if product.get('id') and sku:
            sku_by_product[product['id']] = sku

    by_sku = {}
    for item in inventory_items:
        sku = sku_by_product.get(item.get('productId') or item.get('externalId'))
        if sku and sku not in by_sku:
            by_sku[sku] = item
    return by_sku


def build_inventory_variants(created: dict, source: dict, inventory: dict) -> List[dict]:
    """
    Inventory PATCH variants for a freshly created product.

    Destination variants pair with source inventory variants by position;
    a product without variants uses the zero variant id.
    """
    source_variants = inventory.get('variants') or []
    fallback = (source.get('stock') or {}).get('quantity')

    created_variants = created.get('variants') or []
    if not created_variants:
        first = source_variants[0] if source_variants else {}
        return [_inventory_line(ZERO_VARIANT_ID, first, fallback)]

    lines = []
    for index, variant in enumerate(created_variants):
        source_variant = source_variants[index] if index < len(source_variants) else {}
        lines.append(_inventory_line(variant.get('id') or ZERO_VARIANT_ID, source_variant, fallback))
    return lines


def _inventory_line(variant_id: str, source_variant: dict, fallback_quantity) -> dict:
    line = {'variantId': variant_id}
    quantity = source_variant.get('quantity', fallback_quantity)
    if quantity is not None:
        line['quantity'] = quantity
    if 'inStock' in source_variant:
        line['inStock'] = source_variant['inStock']
    return line


class ProductPipeline(BasePipeline):
    """
    Copy products, then attach inventory and collection membership.

    Collection ids come from the collection remap, seeded from the
    collections ledger so products can run in a separate invocation.
    """

    entity_type = 'products'
    label = 'Products'
    model = ProductMigration
    adapter_classes = {'products': ProductAdapter, 'collections': CollectionAdapter}

    def migrate(self, ctx: RunContext) -> None:
        collections_ledger = MigrationLedger(CollectionMigration, ctx.operator_id, ctx.from_store_id, ctx.to_store_id)
        self.remapper.seed_from_ledger(COLLECTION, collections_ledger)
        for entry in collections_ledger.entries('success', limit=None):
            if entry.source_collection_slug and entry.destination_id:
                self.remapper.record_mapping(COLLECTION_SLUG, entry.source_collection_slug, entry.destination_id)

        self._collection_slugs = {
            c['id']: c.get('slug')
            for c in self.collections.list_all(ctx.from_token)
            if c.get('id') and not is_all_products(c)
        }

        products = self.limit(ctx, self.products.list_all(ctx.from_token))
        self._inventory = index_inventory_by_sku(products, list(self.products.list_inventory(ctx.from_token)))
        self.log.info(
            self.context,
            f'Fetched {len(products)} product(s), {len(self._inventory)} inventory record(s) by SKU.'
        )

        self.process_all(ctx, products, self.migrate_one)

    def migrate_one(self, ctx: RunContext, product: dict) -> None:
        entry = self.stage(
            ctx, product.get('id'),
            source_product_sku=product.get('sku') or None,
            source_product_name=product.get('name'),
        )
        if self.skip_finished(ctx, entry):
            self.remapper.record_mapping(PRODUCT, product.get('id'), entry.destination_id)
            return
        if self.skip_dry_run(ctx, entry):
            return

        result = self.products.create(ctx.to_token, sanitize_product(product))
        if not result['ok']:
            self.fail(ctx, entry, result['error'])
            return

        product_id = result['id']
        self.succeed(ctx, entry, product_id)
        self.remapper.record_mapping(PRODUCT, product.get('id'), product_id)
        self.log.success(self.context, f"Created '{product.get('name')}' -> {product_id}.")

        created = (result.get('data') or {}).get('product') or {}
        label = product.get('id')
        self.run_dependent(ctx, f'inventory for {label}', self._apply_inventory, product, created, product_id)
        self.run_dependent(ctx, f'collections for {label}', self._apply_collections, product, product_id)

    def _apply_inventory(self, ctx: RunContext, product: dict, created: dict, product_id: str) -> None:
        sku = (product.get('sku') or '').strip()
        inventory = self._inventory.get(sku) if sku else None
        if inventory is None:
            return
        variants = build_inventory_variants(created, product, inventory)
        track = inventory.get('trackQuantity', True)
        result = self.products.update_inventory(ctx.to_token, product_id, variants, track)
        if not result['ok']:
            self.dependent_error(ctx, f'inventory for {product.get("id")}', result['error'])

    def _destination_collection(self, ctx: RunContext, collection_id: str) -> Optional[str]:
        destination_id = self.remapper.translate(COLLECTION, collection_id)
        if destination_id:
            return destination_id
        slug = self._collection_slugs.get(collection_id)
        destination_id = self.remapper.translate(COLLECTION_SLUG, slug)
        if destination_id or not slug:
            return destination_id
        found = self.collections.find_by_slug(ctx.to_token, slug)
        if found and found.get('id'):
            self.remapper.record_mapping(COLLECTION_SLUG, slug, found['id'])
            return found['id']
        return None

    def _apply_collections(self, ctx: RunContext, product: dict, product_id: str) -> None:
        for collection_id in product.get('collectionIds') or []:
            if collection_id not in self._collection_slugs:
                continue
            destination_id = self._destination_collection(ctx, collection_id)
            if not destination_id:
                self.dependent_error(
                    ctx, f'collection for {product.get("id")}',
                    f'No destination collection for source collection {collection_id}'
                )
                continue
            result = self.products.add_to_collection(ctx.to_token, destination_id, [product_id])
            if not result['ok']:
                self.dependent_error(ctx, f'collection {destination_id} for {product.get("id")}', result['error'])
