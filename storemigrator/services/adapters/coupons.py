"""
Store coupons (stores v2).
"""
from typing import Any, Dict, Iterator, Optional

from .base import RemoteAdapter, create_result


def normalize_code(code) -> str:
    return (code or '').strip().upper()


class CouponAdapter(RemoteAdapter):

    PAGE_SIZE = 100

    def list_all(self, token: str, filters: Optional[dict] = None) -> Iterator[dict]:
        def fetch(offset, limit):
            query = {'paging': {'limit': limit, 'offset': offset}}
            if filters:
                query['filter'] = filters
            return self.client.post(token, 'stores/v2/coupons/query', {'query': query})

        return self._offset_pages(fetch, 'coupons', self.PAGE_SIZE, 'Coupons query')

    def index_by_code(self, token: str) -> Dict[str, dict]:
        """Uppercased coupon code -> coupon, for every coupon in the store."""
        index = {}
        for coupon in self.list_all(token):
            code = normalize_code((coupon.get('specification') or {}).get('code'))
            if code and coupon.get('id'):
                index.setdefault(code, coupon)
        return index

    def find_by_natural_key(self, token: str, code: str) -> Optional[dict]:
        if not code:
            return None
        response = self.client.post(token, 'stores/v2/coupons/query', {
            'query': {
                'filter': {'specification.code': {'$eq': code}},
                'paging': {'limit': 1},
            }
        })
        if response.ok:
            coupons = response.data.get('coupons') or []
            return coupons[0] if coupons else None
        return None

    def create(self, token: str, specification: dict) -> Dict[str, Any]:
        response = self.client.post(token, 'stores/v2/coupons', {'specification': specification})
        return create_result(response, 'id')
