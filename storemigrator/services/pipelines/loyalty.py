"""
Loyalty accounts pipeline.

Accounts are matched to destination contacts by email. Balances are always
set through a points delta: a new account starts at zero and is adjusted up
to the source balance; an account that already exists is adjusted by the
difference.
"""
import logging
from functools import partial
from typing import Dict, List, Optional

from .base import BasePipeline, RunContext
from ..adapters.contacts import ContactAdapter
from ..adapters.loyalty import LoyaltyAdapter, account_balance, account_contact_id
from ..id_remapper import CONTACT
from ..ledger_service import MigrationLedger
from ...models import ContactMigration, LoyaltyAccountMigration
from ...utils.extraction import LOYALTY_DATE_STRATEGIES, extract_email, oldest_first, resolve_created_timestamp

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = 'Duplicate: balance aligned'


def account_name(account: dict) -> Optional[str]:
    contact = account.get('contact') or {}
    name = contact.get('name')
    if isinstance(name, dict):
        name = ' '.join(p for p in (name.get('first'), name.get('last')) if p)
    return name or contact.get('displayName') or None


def account_tier(account: dict) -> Optional[str]:
    tier = account.get('tier') or {}
    return tier.get('name') or tier.get('id') or None


class LoyaltyPipeline(BasePipeline):

    entity_type = 'loyalty'
    label = 'Loyalty accounts'
    model = LoyaltyAccountMigration
    adapter_classes = {'loyalty': LoyaltyAdapter, 'contacts': ContactAdapter}

    def migrate(self, ctx: RunContext) -> None:
        program = self.loyalty.ensure_program_active(ctx.to_token)
        if not program['ok']:
            self.dependent_error(ctx, 'loyalty program', program.get('error') or 'Could not activate program')
        elif program.get('activated'):
            self.log.info(self.context, 'Activated the destination loyalty program.')

        resolver = partial(resolve_created_timestamp, strategies=LOYALTY_DATE_STRATEGIES)
        accounts = oldest_first(self.limit(ctx, self.loyalty.list_all(ctx.from_token)), resolver)
        self.log.info(self.context, f'Fetched {len(accounts)} loyalty account(s).')

        self._pending: List[dict] = []
        self.process_all(ctx, accounts, self.stage_account)
        if not self._pending:
            return

        self._contacts_by_email = self._index_contacts(ctx, self._pending)
        self._accounts_by_contact = self.loyalty.index_by_contact(ctx.to_token)
        self.log.info(
            self.context,
            f'Matched {len(self._contacts_by_email)} email(s) to destination contacts; '
            f'{len(self._accounts_by_contact)} destination account(s) exist.'
        )

        self.process_all(ctx, self._pending, self.migrate_one)

    def stage_account(self, ctx: RunContext, account: dict) -> None:
        entry = self.stage(
            ctx, account.get('id'),
            source_contact_id=account_contact_id(account),
            source_email=extract_email(account),
            source_name=account_name(account),
            source_points_balance=account_balance(account),
            source_tier_name=account_tier(account),
        )
        if self.skip_finished(ctx, entry):
            return
        self._pending.append(account)

    def _index_contacts(self, ctx: RunContext, accounts: List[dict]) -> Dict[str, str]:
        """Lowercased email -> destination contact id, ledger first, then bulk lookup."""
        contacts_ledger = MigrationLedger(ContactMigration, ctx.operator_id, ctx.from_store_id, ctx.to_store_id)
        self.remapper.seed_from_ledger(CONTACT, contacts_ledger)

        found = {}
        missing = []
        for email in {extract_email(a) for a in accounts}:
            if not email:
                continue
            contact_id = self.remapper.translate(CONTACT, email)
            if contact_id:
                found[email] = contact_id
            else:
                missing.append(email)
        if missing:
            found.update(self.contacts.index_emails(ctx.to_token, missing))
        return found

    def migrate_one(self, ctx: RunContext, account: dict) -> None:
        entry = self.stage(ctx, account.get('id'))
        if self.skip_finished(ctx, entry):
            return
        if self.skip_dry_run(ctx, entry):
            return

        email = extract_email(account)
        if not email:
            self.fail(ctx, entry, 'Source account has no email')
            return
        contact_id = self._contacts_by_email.get(email)
        if not contact_id:
            self.fail(ctx, entry, f'No destination contact for {email}')
            return

        desired = account_balance(account)
        existing = self._accounts_by_contact.get(contact_id)
        if existing:
            self._align_existing(ctx, entry, existing, desired, contact_id)
            return

        result = self.loyalty.create(ctx.to_token, contact_id)
        if not result['ok']:
            self.fail(ctx, entry, result['error'], destination_contact_id=contact_id)
            return

        account_id = result['id']
        self._accounts_by_contact[contact_id] = {'id': account_id, 'balance': 0}
        self.succeed(ctx, entry, account_id, destination_contact_id=contact_id)
        self.log.success(self.context, f'Created account for {email} -> {account_id} ({desired} points).')
        self.run_dependent(ctx, f'points for account {account_id}', self._seed_balance, account_id, contact_id, desired)

    def _seed_balance(self, ctx: RunContext, account_id: str, contact_id: str, desired: int) -> None:
        adjusted = self.loyalty.adjust_points(ctx.to_token, account_id, desired)
        if adjusted['ok']:
            self._accounts_by_contact[contact_id]['balance'] = desired
        else:
            self.dependent_error(ctx, f'points for account {account_id}', adjusted['error'])

    def _align_existing(self, ctx: RunContext, entry, existing: dict, desired: int, contact_id: str) -> None:
        delta = desired - existing['balance']
        if delta:
            adjusted = self.loyalty.adjust_points(ctx.to_token, existing['id'], delta)
            if not adjusted['ok']:
                self.fail(ctx, entry, adjusted['error'], destination_contact_id=contact_id)
                return
            existing['balance'] = desired
        self.skip(
            ctx, entry, DUPLICATE_MESSAGE,
            destination_id=existing['id'],
            destination_contact_id=contact_id,
        )
