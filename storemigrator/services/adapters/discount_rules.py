"""
Automatic discount rules (eCommerce v1).
"""
from typing import Any, Dict, Iterator, Optional

from .base import RemoteAdapter, create_result

CURSOR_PATHS = ('pageInfo.nextCursor', 'cursorPaging.nextCursor', 'pagingMetadata.cursors.next')


class DiscountRuleAdapter(RemoteAdapter):

    PAGE_SIZE = 100

    def list_all(self, token: str, filters: Optional[dict] = None) -> Iterator[dict]:
        def fetch(cursor):
            paging = {'limit': self.PAGE_SIZE}
            if cursor:
                paging['cursor'] = cursor
            query = {
                'sort': [{'fieldName': 'name', 'order': 'ASC'}],
                'cursorPaging': paging,
            }
            if filters:
                query['filter'] = filters
            return self.client.post(token, 'ecom/v1/discount-rules/query', {'query': query})

        return self._cursor_pages(fetch, 'discountRules', 'Discount rules query', CURSOR_PATHS)

    def create(self, token: str, rule: dict) -> Dict[str, Any]:
        response = self.client.post(token, 'ecom/v1/discount-rules', {'discountRule': rule})
        return create_result(response, 'discountRule.id')
