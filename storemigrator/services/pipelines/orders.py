"""
Orders pipeline.

The order list endpoint only returns summaries, so each order is fetched in
full (payments, fulfillments and refunds attached) before it is created in
the destination. Payments, fulfillments and refunds are replayed as deltas
against what the destination order already has, which keeps a restarted run
from doubling them.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from .base import BasePipeline, RunContext
from ..adapters.contacts import ContactAdapter
from ..adapters.orders import OrderAdapter, normalize_payments
from ..id_remapper import CONTACT, MEMBER
from ..ledger_service import MigrationLedger
from ...models import ContactMigration, OrderMigration
from ...utils.payloads import redact_large, strip_keys

logger = logging.getLogger(__name__)

ORDER_STRIP_FIELDS = (
    'id', 'number', 'createdDate', 'updatedDate', 'siteLanguage',
    'isInternalOrderCreate', 'seenByAHuman', 'transactions', 'fulfillments',
    'refundability', 'refunds',
)
LINE_ITEM_STRIP_FIELDS = ('id', 'rootCatalogItemId', 'priceUndetermined', 'fixedQuantity', 'modifierGroups')
ACTIVITY_STRIP_FIELDS = ('id',)
TAG_GROUPS = ('privateTags', 'tags')

REGULAR_PAYMENT_KEYS = (
    'paymentOrderId', 'gatewayTransactionId', 'paymentMethod',
    'providerTransactionId', 'offlinePayment', 'status',
    'savedPaymentMethod', 'paymentProvider', 'chargebacks',
)
GIFTCARD_PAYMENT_KEYS = ('giftCardPaymentId', 'appId')

ZERO = Decimal('0')


def _amount_text(value) -> Optional[str]:
    """Amount as text from ``{"amount": "9.99"}`` or a bare value."""
    if isinstance(value, dict):
        value = value.get('amount')
    if value in (None, ''):
        return None
    return str(value)


def money(value) -> Decimal:
    text = _amount_text(value)
    if text is None:
        return ZERO
    try:
        return Decimal(text)
    except InvalidOperation:
        return ZERO


# ==================== PAYMENTS ====================

def shape_payment(payment: dict) -> dict:
    """Reduce an exported payment to what add-payment accepts."""
    shaped = {
        'amount': {'amount': _amount_text(payment.get('amount')) or '0.00'},
        'refundDisabled': bool(payment.get('refundDisabled', False)),
    }
    if payment.get('createdDate'):
        shaped['createdDate'] = payment['createdDate']
    if payment.get('status'):
        shaped['status'] = payment['status']

    regular = payment.get('regularPaymentDetails')
    if isinstance(regular, dict) and regular:
        shaped['regularPaymentDetails'] = {k: regular[k] for k in REGULAR_PAYMENT_KEYS if k in regular}
    giftcard = payment.get('giftcardPaymentDetails')
    if isinstance(giftcard, dict) and giftcard:
        shaped['giftcardPaymentDetails'] = {k: giftcard[k] for k in GIFTCARD_PAYMENT_KEYS if k in giftcard}
    return shaped


def payment_signature(payment: dict) -> Optional[str]:
    """
    Identity of a payment across stores.

    Tried in order: provider transaction id, gateway transaction id,
    receipt id, amount plus creation time to the second, amount alone.
    """
    if not isinstance(payment, dict):
        return None
    regular = payment.get('regularPaymentDetails') or {}
    if regular.get('providerTransactionId'):
        return f"prov:{regular['providerTransactionId']}"
    if regular.get('gatewayTransactionId'):
        return f"gate:{regular['gatewayTransactionId']}"
    receipt = (payment.get('wixReceipt') or {}).get('receiptId')
    if receipt:
        return f'rcpt:{receipt}'

    amount = _amount_text(payment.get('amount'))
    created = payment.get('createdDate')
    if amount and created:
        return f'amtcd:{amount}|{str(created)[:19]}'
    if amount:
        return f'amt:{amount}'
    return None


def filter_new_payments(existing, exported: List[dict]) -> List[dict]:
    """Exported payments whose signature the destination does not have yet."""
    seen = {sig for sig in (payment_signature(p) for p in normalize_payments(existing)) if sig}
    new = []
    for payment in exported:
        if not isinstance(payment, dict):
            continue
        signature = payment_signature(payment)
        if signature and signature in seen:
            continue
        new.append(payment)
    return new


# ==================== LINE ITEMS / FULFILLMENTS ====================

def _line_sku(line: dict) -> Optional[str]:
    return (line.get('physicalProperties') or {}).get('sku') or None


def _line_name(line: dict) -> Optional[str]:
    return (line.get('productName') or {}).get('original') or None


def build_line_item_map(source_lines: List[dict], destination_lines: List[dict]) -> Dict[str, str]:
    """
    Source line item key -> destination line item id.

    Destination lines are matched by SKU first, then by product name; each
    destination line is consumed by the first source line that claims it.
    The key is the source line id, else its SKU, else its name.
    """
    by_sku: Dict[str, List[dict]] = {}
    by_name: Dict[str, List[dict]] = {}
    for line in destination_lines:
        if _line_sku(line):
            by_sku.setdefault(_line_sku(line), []).append(line)
        if _line_name(line):
            by_name.setdefault(_line_name(line), []).append(line)

    used = set()

    def take(candidates: List[dict]) -> Optional[dict]:
        while candidates:
            line = candidates.pop(0)
            if id(line) not in used:
                used.add(id(line))
                return line
        return None

    mapping = {}
    for line in source_lines:
        sku, name = _line_sku(line), _line_name(line)
        match = None
        if sku and by_sku.get(sku):
            match = take(by_sku[sku])
        if match is None and name and by_name.get(name):
            match = take(by_name[name])
        if match and match.get('id'):
            mapping[line.get('id') or sku or name] = match['id']
    return mapping


def compute_fulfillment_deltas(
    source_fulfillments: List[dict],
    destination_fulfillments: List[dict],
    line_item_map: Dict[str, str],
    destination_lines: List[dict]
) -> List[dict]:
    """
    Fulfillment payloads still missing on the destination order.

    Each line is capped at the destination quantity minus what is already
    fulfilled there, counting lines emitted earlier in the same call.
    """
    fulfilled: Dict[str, int] = {}
    for fulfillment in destination_fulfillments or []:
        for line in fulfillment.get('lineItems') or []:
            if line.get('id'):
                fulfilled[line['id']] = fulfilled.get(line['id'], 0) + int(line.get('quantity') or 0)

    ordered = {line['id']: int(line.get('quantity') or 1) for line in destination_lines if line.get('id')}

    payloads = []
    for fulfillment in source_fulfillments or []:
        lines = []
        for line in fulfillment.get('lineItems') or []:
            destination_id = line_item_map.get(line.get('id'))
            if not destination_id:
                continue
            already = fulfilled.get(destination_id, 0)
            quantity = min(int(line.get('quantity') or 0), max(0, ordered.get(destination_id, 0) - already))
            if quantity > 0:
                lines.append({'id': destination_id, 'quantity': quantity})
                fulfilled[destination_id] = already + quantity
        if lines:
            payloads.append({
                'lineItems': lines,
                'trackingInfo': fulfillment.get('trackingInfo'),
                'status': fulfillment.get('status') or 'Fulfilled',
                'completed': fulfillment.get('completed', True),
            })
    return payloads


# ==================== REFUNDS ====================

def collect_refunds_from_payments(payments: List[dict]) -> List[dict]:
    """Refunds embedded in exported payments, tagged with their payment ids."""
    refunds = []
    for payment in payments:
        regular = payment.get('regularPaymentDetails') or {}
        for refund in payment.get('refunds') or []:
            refunds.append({
                'amount': _amount_text(refund.get('amount')),
                'providerTransactionId': regular.get('providerTransactionId'),
                'gatewayTransactionId': regular.get('gatewayTransactionId'),
            })
    return refunds


def plan_refunds(source_refunds: List[dict], destination_payments: List[dict]) -> Dict[str, List[dict]]:
    """
    External refund rows to record, grouped by destination payment id.

    Refund amounts the destination already carries are consumed first, so
    replaying the same refunds adds nothing. A refund goes to the payment
    with its provider id, else its gateway id, else the first payment with
    a balance left, and never exceeds that payment's remaining balance.
    """
    remaining: Dict[str, Decimal] = {}
    by_provider: Dict[str, str] = {}
    by_gateway: Dict[str, str] = {}
    covered = ZERO

    for payment in destination_payments:
        if not isinstance(payment, dict) or not payment.get('id'):
            continue
        refunded = sum((money(r.get('amount')) for r in payment.get('refunds') or []), ZERO)
        remaining[payment['id']] = max(ZERO, money(payment.get('amount')) - refunded)
        covered += refunded
        regular = payment.get('regularPaymentDetails') or {}
        if regular.get('providerTransactionId'):
            by_provider[regular['providerTransactionId']] = payment['id']
        if regular.get('gatewayTransactionId'):
            by_gateway[regular['gatewayTransactionId']] = payment['id']

    planned: Dict[str, List[dict]] = {}
    for refund in source_refunds:
        amount = money(refund.get('amount'))
        if amount <= ZERO:
            continue
        if covered > ZERO:
            absorbed = min(covered, amount)
            covered -= absorbed
            amount -= absorbed
            if amount <= ZERO:
                continue

        source_payment = refund.get('payment') or {}
        provider = refund.get('providerTransactionId') or source_payment.get('providerTransactionId')
        gateway = refund.get('gatewayTransactionId') or source_payment.get('gatewayTransactionId')

        payment_id = by_provider.get(provider) if provider else None
        if payment_id is None and gateway:
            payment_id = by_gateway.get(gateway)
        if payment_id is None:
            payment_id = next((pid for pid, left in remaining.items() if left > ZERO), None)
        if payment_id is None:
            continue

        refund_amount = min(amount, remaining.get(payment_id, ZERO))
        if refund_amount <= ZERO:
            continue
        planned.setdefault(payment_id, []).append({
            'paymentId': payment_id,
            'amount': {'amount': format(refund_amount, 'f')},
            'externalRefund': True,
        })
        remaining[payment_id] -= refund_amount
    return planned


# ==================== ORDER PAYLOAD ====================

def strip_order(order: dict) -> dict:
    """Create payload without remote-assigned order, line item and activity fields."""
    payload = strip_keys(order, ORDER_STRIP_FIELDS)
    if order.get('lineItems'):
        payload['lineItems'] = [strip_keys(line, LINE_ITEM_STRIP_FIELDS) for line in order['lineItems']]
    if order.get('activities'):
        payload['activities'] = [strip_keys(activity, ACTIVITY_STRIP_FIELDS) for activity in order['activities']]
    return payload


def _source_fulfillments(order: dict) -> List[dict]:
    fulfillments = order.get('fulfillments')
    if isinstance(fulfillments, dict):
        return fulfillments.get('fulfillments') or []
    return fulfillments or []


class OrderPipeline(BasePipeline):
    """
    Options:
        replay_dependents: on an order that already succeeded, re-apply
            missing payments, fulfillments and refunds (default True)
    """

    entity_type = 'orders'
    label = 'Orders'
    model = OrderMigration
    adapter_classes = {'orders': OrderAdapter, 'contacts': ContactAdapter}
    progress_every = 10

    def migrate(self, ctx: RunContext) -> None:
        summaries = self.limit(ctx, self.orders.list_all(ctx.from_token))
        self.log.info(self.context, f'Fetched {len(summaries)} order summary(ies).')

        self._source_tags = self.orders.list_tags(ctx.from_token)
        self._destination_tags = {
            name: tag_id for tag_id, name in self.orders.list_tags(ctx.to_token).items() if name
        }
        self._invoices = self.orders.list_invoices(ctx.from_token, [o['id'] for o in summaries if o.get('id')])
        self._seed_contacts(ctx, summaries)

        self.process_all(ctx, summaries, self.migrate_one)

    def _seed_contacts(self, ctx: RunContext, summaries: List[dict]) -> None:
        """Buyer email -> destination contact id, from the contacts ledger and a bulk lookup."""
        contacts_ledger = MigrationLedger(ContactMigration, ctx.operator_id, ctx.from_store_id, ctx.to_store_id)
        self.remapper.seed_from_ledger(CONTACT, contacts_ledger)

        emails = {
            ((o.get('buyerInfo') or {}).get('email') or '').strip().lower()
            for o in summaries
        }
        missing = [e for e in emails if e and self.remapper.translate(CONTACT, e) is None]
        if missing:
            for email, contact_id in self.contacts.index_emails(ctx.to_token, missing).items():
                self.remapper.record_mapping(CONTACT, email, contact_id)

    # ==================== PER ORDER ====================

    def migrate_one(self, ctx: RunContext, summary: dict) -> None:
        source_id = summary.get('id')
        number = summary.get('number')
        entry = self.stage(ctx, source_id, order_number=str(number) if number is not None else None)

        if self.skip_finished(ctx, entry):
            if ctx.options.get('replay_dependents', True) and not ctx.dry_run and entry.destination_id:
                order = self.orders.get_full(ctx.from_token, source_id)
                if order is not None:
                    self.apply_dependents(ctx, order, entry.destination_id)
            return
        if self.skip_dry_run(ctx, entry):
            return

        order = self.orders.get_full(ctx.from_token, source_id)
        if order is None:
            self.fail(ctx, entry, 'Could not fetch full order from source store')
            return

        payload = self.build_payload(ctx, order)
        result = self.orders.create(ctx.to_token, payload)
        if not result['ok']:
            logger.debug(f'Order #{number} create payload: {redact_large(payload)}')
            self.fail(ctx, entry, result['error'] or f"HTTP {result.get('status')}")
            return

        destination_id = result['id']
        self.succeed(ctx, entry, destination_id)
        self.log.success(self.context, f'Created order #{number} -> {destination_id}.')

        invoices = self._invoices.get(source_id) or []
        if invoices:
            self.log.info(self.context, f'Order #{number} had {len(invoices)} invoice(s) in the source; invoices are not recreated.')

        self.apply_dependents(ctx, order, destination_id)

    def build_payload(self, ctx: RunContext, order: dict) -> dict:
        payload = strip_order(order)
        if order.get('tags'):
            payload['tags'] = self.resolve_tags(ctx, order['tags'])
        if order.get('buyerInfo'):
            payload['buyerInfo'] = self.remap_buyer(order['buyerInfo'])
        return payload

    def remap_buyer(self, buyer: dict) -> dict:
        """Point the buyer at the destination contact/member, or drop the stale ids."""
        buyer = dict(buyer)
        email = (buyer.get('email') or '').strip().lower()
        contact_id = self.remapper.translate(CONTACT, email)
        if contact_id:
            buyer['contactId'] = contact_id
        else:
            buyer.pop('contactId', None)
        member_id = self.remapper.translate(MEMBER, buyer.get('memberId'))
        if member_id:
            buyer['memberId'] = member_id
        else:
            buyer.pop('memberId', None)
        return buyer

    def resolve_tags(self, ctx: RunContext, tags: dict) -> dict:
        """
        Translate source tag ids to destination tag ids by tag name.

        Missing destination tags are created. A group where no name resolves
        keeps its original ids.
        """
        resolved = {}
        for group in TAG_GROUPS:
            tag_ids = (tags.get(group) or {}).get('tagIds') or []
            names = []
            for tag_id in tag_ids:
                name = self._source_tags.get(tag_id)
                if name and name not in names:
                    names.append(name)

            out = []
            for name in names:
                if name not in self._destination_tags:
                    created = self.orders.create_tag(ctx.to_token, name)
                    if created:
                        self._destination_tags[name] = created
                        self.log.info(self.context, f"Created order tag '{name}' (id={created}).")
                if name in self._destination_tags and self._destination_tags[name] not in out:
                    out.append(self._destination_tags[name])

            resolved[group] = {'tagIds': out or list(tag_ids)}
        return resolved

    # ==================== DEPENDENTS ====================

    def apply_dependents(self, ctx: RunContext, order: dict, destination_id: str) -> None:
        """Payments, then fulfillment deltas, then refunds; each step runs even if an earlier one raised."""
        label = f"order #{order.get('number') or order.get('id')}"
        source_payments = normalize_payments(order.get('transactions'))

        existing_payments = self.run_dependent(
            ctx, f'payments for {label}', self._apply_payments, source_payments, destination_id, label
        )
        self.run_dependent(ctx, f'fulfillments for {label}', self._apply_fulfillments, order, destination_id, label)
        self.run_dependent(
            ctx, f'refunds for {label}', self._apply_refunds, order, source_payments, existing_payments, destination_id, label
        )

    def _apply_payments(self, ctx: RunContext, source_payments: List[dict], destination_id: str, label: str) -> List[dict]:
        existing_payments = self.orders.list_payments(ctx.to_token, destination_id)
        new_payments = filter_new_payments(existing_payments, [shape_payment(p) for p in source_payments])
        if new_payments:
            result = self.orders.add_payments(ctx.to_token, destination_id, new_payments)
            if result['ok']:
                existing_payments = self.orders.list_payments(ctx.to_token, destination_id)
            else:
                self.dependent_error(ctx, f'payments for {label}', result['error'])
        return existing_payments

    def _apply_fulfillments(self, ctx: RunContext, order: dict, destination_id: str, label: str) -> None:
        destination_order = self.orders.get(ctx.to_token, destination_id) or {}
        destination_lines = destination_order.get('lineItems') or []
        line_item_map = build_line_item_map(order.get('lineItems') or [], destination_lines)

        existing_fulfillments = self.orders.list_fulfillments(ctx.to_token, destination_id)
        deltas = compute_fulfillment_deltas(
            _source_fulfillments(order), existing_fulfillments, line_item_map, destination_lines
        )
        for fulfillment in deltas:
            result = self.orders.create_fulfillment(ctx.to_token, destination_id, fulfillment)
            if not result['ok']:
                self.dependent_error(ctx, f'fulfillment for {label}', result['error'])

    def _apply_refunds(
        self,
        ctx: RunContext,
        order: dict,
        source_payments: List[dict],
        existing_payments: Optional[List[dict]],
        destination_id: str,
        label: str
    ) -> None:
        if existing_payments is None:
            existing_payments = self.orders.list_payments(ctx.to_token, destination_id)
        refunds = order.get('refunds') or collect_refunds_from_payments(source_payments)
        for payment_id, rows in plan_refunds(refunds, existing_payments).items():
            result = self.orders.refund_payments(ctx.to_token, destination_id, rows)
            if not result['ok']:
                self.dependent_error(ctx, f'refund on payment {payment_id} for {label}', result['error'])
