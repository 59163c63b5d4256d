"""
Store collections (catalog v1).
"""
from typing import Any, Dict, Iterator, Optional
from urllib.parse import quote

from .base import RemoteAdapter, create_result

# The platform seeds every store with this collection; it cannot be created.
ALL_PRODUCTS_IDS = (
    '00000000-000000-000000-000000000001',
    '00000000-0000-0000-0000-000000000001',
)
ALL_PRODUCTS_SLUG = 'all-products'


def is_all_products(collection: dict) -> bool:
    return (
        collection.get('id') in ALL_PRODUCTS_IDS
        or (collection.get('slug') or '').lower() == ALL_PRODUCTS_SLUG
    )


class CollectionAdapter(RemoteAdapter):
    """Collections API: list, lookup by slug, create, update."""

    PAGE_SIZE = 100

    def list_all(self, token: str, filters: Optional[dict] = None) -> Iterator[dict]:
        def fetch(offset, limit):
            query = {'paging': {'limit': limit, 'offset': offset}}
            if filters:
                query['filter'] = filters
            return self.client.post(token, 'stores/v1/collections/query', {'query': query})

        return self._offset_pages(fetch, 'collections', self.PAGE_SIZE, 'Collections query')

    def find_by_slug(self, token: str, slug: str) -> Optional[dict]:
        if not slug:
            return None
        response = self.client.get(token, f'stores/v1/collections/slug/{quote(slug, safe="")}')
        if response.ok:
            return response.data.get('collection') or None
        return None

    def create(self, token: str, payload: dict) -> Dict[str, Any]:
        response = self.client.post(token, 'stores/v1/collections', {'collection': payload})
        return create_result(response, 'collection.id')
