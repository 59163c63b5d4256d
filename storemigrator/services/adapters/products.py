"""
Store products, inventory and collection membership (catalog v1/v2).
"""
from typing import Any, Dict, Iterator, List, Optional

from .base import RemoteAdapter, create_result

ZERO_VARIANT_ID = '00000000-0000-0000-0000-000000000000'


class ProductAdapter(RemoteAdapter):
    """Products API plus the inventory and collection-membership side calls."""

    PAGE_SIZE = 100

    def list_all(self, token: str, filters: Optional[dict] = None) -> Iterator[dict]:
        def fetch(offset, limit):
            query = {'paging': {'limit': limit, 'offset': offset}}
            if filters:
                query['filter'] = filters
            return self.client.post(token, 'stores/v1/products/query', {
                'query': query,
                'includeVariants': True,
                'includeHiddenProducts': True,
                'includeMerchantSpecificData': True,
            })

        return self._offset_pages(fetch, 'products', self.PAGE_SIZE, 'Products query')

    def list_inventory(self, token: str) -> Iterator[dict]:
        def fetch(offset, limit):
            return self.client.post(token, 'stores-reader/v2/inventoryItems/query', {
                'query': {'paging': {'limit': limit, 'offset': offset}}
            })

        return self._offset_pages(fetch, 'inventoryItems', self.PAGE_SIZE, 'Inventory query')

    def create(self, token: str, payload: dict) -> Dict[str, Any]:
        response = self.client.post(token, 'stores/v1/products', {'product': payload})
        return create_result(response, 'product.id')

    def update_inventory(self, token: str, product_id: str, variants: List[dict], track_quantity: bool = True) -> Dict[str, Any]:
        body = {'inventoryItem': {'trackQuantity': track_quantity, 'variants': variants}}
        response = self.client.patch(token, f'stores/v2/inventoryItems/product/{product_id}', body)
        if response.ok:
            return {'ok': True}
        return {'ok': False, 'status': response.status, 'error': response.body}

    def add_to_collection(self, token: str, collection_id: str, product_ids: List[str]) -> Dict[str, Any]:
        """409 means the product is already in the collection."""
        response = self.client.post(token, f'stores/v1/collections/{collection_id}/productIds', {
            'productIds': product_ids
        })
        if response.ok or response.status == 409:
            return {'ok': True}
        return {'ok': False, 'status': response.status, 'error': response.body}
