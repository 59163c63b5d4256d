"""
eCommerce orders: summaries, full orders with transactions and fulfillments,
refunds, invoices and order tags.
"""
import json
import logging
from typing import Any, Dict, Iterator, List, Optional

from .base import RemoteAdapter, create_result
from ...utils.exceptions import RemoteApiError
from ...utils.payloads import chunked

logger = logging.getLogger(__name__)

ORDER_TAG_FQDN = 'wix.ecom.v1.order'
INVOICE_LOOKUP_CHUNK = 100


def normalize_payments(data) -> List[dict]:
    """
    Flatten any payments response into a list of payment dicts.

    Accepts the ``orderTransactions`` wrapper, a dict with ``payments``,
    or an already flat list.
    """
    if isinstance(data, list):
        return data if all(isinstance(p, dict) for p in data) else []
    if not isinstance(data, dict):
        return []
    transactions = data.get('orderTransactions')
    if isinstance(transactions, dict) and isinstance(transactions.get('payments'), list):
        return transactions['payments']
    if isinstance(data.get('payments'), list):
        return data['payments']
    return []


class OrderAdapter(RemoteAdapter):
    """
    Orders API and the dependent billing/fulfillment endpoints.

    The order list endpoint is summary-only, so callers list ids with
    ``list_all`` and fetch each order with ``get_full``.
    """

    PAGE_SIZE = 100

    # ==================== ORDERS ====================

    def list_all(self, token: str, filters: Optional[dict] = None) -> Iterator[dict]:
        def fetch(offset, limit):
            query = {
                'sort': json.dumps([{'dateCreated': 'asc'}]),
                'paging': {'limit': limit, 'offset': offset},
            }
            if filters:
                query['filter'] = json.dumps(filters)
            return self.client.post(token, 'stores/v2/orders/query', {'query': query})

        return self._offset_pages(fetch, 'orders', self.PAGE_SIZE, 'Orders query')

    def get(self, token: str, order_id: str) -> Optional[dict]:
        response = self.client.get(token, f'ecom/v1/orders/{order_id}')
        if not response.ok:
            logger.warning(f"Order {order_id} fetch failed: {response.error()}")
            return None
        return response.data.get('order') or None

    def get_full(self, token: str, order_id: str) -> Optional[dict]:
        """
        Order with ``transactions``, ``fulfillments`` and ``refunds`` attached.

        ``refunds`` holds the refund search hits for each payment charge id,
        each replaced by its full record when one can be fetched. Callers fall
        back to the refunds embedded in the payments when the search is empty.
        """
        order = self.get(token, order_id)
        if order is None:
            return None

        payments_response = self.client.get(token, f'ecom/v1/payments/orders/{order_id}')
        order['transactions'] = payments_response.data.get('orderTransactions') or {} if payments_response.ok else {}

        fulfillments_response = self.client.get(token, f'ecom/v1/fulfillments/orders/{order_id}')
        order['fulfillments'] = (
            fulfillments_response.data.get('orderWithFulfillments') or {} if fulfillments_response.ok else {}
        )

        refunds = []
        for payment in normalize_payments(order['transactions']):
            details = payment.get('regularPaymentDetails') or {}
            charge_id = details.get('chargeId') or payment.get('chargeId')
            if not charge_id:
                continue
            for refund in self.query_refunds(token, {'chargeId': charge_id}):
                record = self.get_refund(token, refund.get('id')) or refund
                record.setdefault('payment', {
                    'providerTransactionId': details.get('providerTransactionId'),
                    'gatewayTransactionId': details.get('gatewayTransactionId'),
                })
                refunds.append(record)
        order['refunds'] = refunds
        return order

    def create(self, token: str, payload: dict) -> Dict[str, Any]:
        response = self.client.post(token, 'ecom/v1/orders', {'order': payload})
        return create_result(response, 'order.id')

    # ==================== PAYMENTS ====================

    def list_payments(self, token: str, order_id: str) -> List[dict]:
        response = self.client.get(token, f'ecom/v1/payments/orders/{order_id}')
        if not response.ok:
            return []
        return normalize_payments(response.data)

    def add_payments(self, token: str, order_id: str, payments: List[dict]) -> Dict[str, Any]:
        response = self.client.post(token, f'ecom/v1/payments/orders/{order_id}/add-payment', {
            'payments': payments
        })
        return {'ok': response.ok, 'status': response.status, 'error': None if response.ok else response.body}

    def refund_payments(self, token: str, order_id: str, payment_refunds: List[dict]) -> Dict[str, Any]:
        """Record external refunds; the customer is never emailed."""
        response = self.client.post(token, 'ecom/v1/order-billing/refund-payments', {
            'orderId': order_id,
            'paymentRefunds': payment_refunds,
            'sideEffects': {'notifications': {'sendCustomerEmail': False}},
        })
        return {'ok': response.ok, 'status': response.status, 'error': None if response.ok else response.body}

    # ==================== REFUNDS ====================

    def query_refunds(self, token: str, filters: dict) -> List[dict]:
        def fetch(cursor):
            paging = {'limit': 100}
            if cursor:
                paging['cursor'] = cursor
            return self.client.post(token, 'payments/refunds/v1/refunds/query', {
                'query': {
                    'filter': filters,
                    'sort': [{'fieldName': 'createdDate', 'order': 'ASC'}],
                    'cursorPaging': paging,
                }
            })

        try:
            return list(self._cursor_pages(fetch, 'refunds', 'Refunds query'))
        except RemoteApiError as e:
            logger.warning(f"Refund search failed for {filters}: {e}")
            return []

    def get_refund(self, token: str, refund_id: Optional[str]) -> Optional[dict]:
        if not refund_id:
            return None
        response = self.client.get(token, f'payments/refunds/v1/refunds/{refund_id}')
        return response.data.get('refund') if response.ok else None

    # ==================== FULFILLMENTS ====================

    def list_fulfillments(self, token: str, order_id: str) -> List[dict]:
        response = self.client.get(token, f'ecom/v1/fulfillments/orders/{order_id}')
        if not response.ok:
            return []
        return response.json_path('orderWithFulfillments.fulfillments') or []

    def create_fulfillment(self, token: str, order_id: str, fulfillment: dict) -> Dict[str, Any]:
        response = self.client.post(
            token,
            f'ecom/v1/fulfillments/orders/{order_id}/create-fulfillment',
            {'fulfillment': fulfillment}
        )
        return {'ok': response.ok, 'status': response.status, 'error': None if response.ok else response.body}

    # ==================== TAGS ====================

    def list_tags(self, token: str) -> Dict[str, str]:
        """Order tag id -> name."""
        response = self.client.get(token, 'tags/v1/tags', {'fqdn': ORDER_TAG_FQDN})
        if not response.ok:
            logger.warning(f"Order tag list failed: {response.error()}")
            return {}
        return {t['id']: t.get('name') for t in response.data.get('tags') or [] if t.get('id')}

    def create_tag(self, token: str, name: str) -> Optional[str]:
        response = self.client.post(token, 'tags/v1/tags', {'tag': {'name': name, 'fqdn': ORDER_TAG_FQDN}})
        if not response.ok:
            logger.warning(f"Order tag create failed for '{name}': {response.error()}")
            return None
        return response.json_path('tag.id') or response.json_path('id')

    # ==================== INVOICES ====================

    def list_invoices(self, token: str, order_ids: List[str]) -> Dict[str, list]:
        """Order id -> invoicesInfo, looked up 100 orders at a time."""
        by_order = {}
        for batch in chunked(list(order_ids), INVOICE_LOOKUP_CHUNK):
            response = self.client.post(token, 'ecom/v1/ep-invoices/list-by-ids', {'orderIds': batch})
            if not response.ok:
                logger.warning(f"Invoice lookup failed for {len(batch)} order(s): {response.error()}")
                continue
            for row in response.data.get('invoicesForOrder') or []:
                if row.get('orderId'):
                    by_order[row['orderId']] = row.get('invoicesInfo') or []
        return by_order
