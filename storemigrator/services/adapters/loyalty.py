"""
Loyalty program and loyalty accounts.
"""
import logging
import uuid
from typing import Any, Dict, Iterator, Optional

from .base import RemoteAdapter

logger = logging.getLogger(__name__)

REVISION_CONFLICT_STATUSES = (400, 409, 412)


def account_contact_id(account: dict) -> Optional[str]:
    return account.get('contactId') or (account.get('contact') or {}).get('id')


def account_balance(account: dict) -> int:
    try:
        return int((account.get('points') or {}).get('balance') or 0)
    except (TypeError, ValueError):
        return 0


class LoyaltyAdapter(RemoteAdapter):
    """Loyalty accounts with delta-based point adjustment."""

    # ==================== PROGRAM ====================

    def get_program(self, token: str) -> dict:
        response = self.client.get(token, 'loyalty-programs/v1/program')
        return response.data if response.ok else {}

    def ensure_program_active(self, token: str) -> Dict[str, Any]:
        program = self.get_program(token)
        status = (
            (program.get('loyaltyProgram') or {}).get('status')
            or (program.get('program') or {}).get('status')
            or program.get('status')
        )
        if status == 'ACTIVE':
            return {'ok': True, 'activated': False}

        response = self.client.post(token, 'loyalty-programs/v1/program/activate', {})
        if not response.ok:
            logger.warning(f"Loyalty program activation failed: {response.error()}")
        return {'ok': response.ok, 'activated': response.ok, 'error': None if response.ok else response.body}

    # ==================== ACCOUNTS ====================

    def list_all(self, token: str, filters: Optional[dict] = None) -> Iterator[dict]:
        def fetch(cursor):
            body = {'query': {'filter': filters} if filters else {}}
            if cursor:
                body['cursor'] = cursor
            return self.client.post(token, 'loyalty-accounts/v1/accounts/query', body)

        cursor = None
        seen = set()
        while True:
            response = self._require_ok(fetch(cursor), 'Loyalty accounts query')
            yield from response.data.get('loyaltyAccounts') or response.data.get('accounts') or []

            cursor = response.json_path('pagingMetadata.cursors.next')
            if not response.json_path('pagingMetadata.hasNext') or not cursor or cursor in seen:
                break
            seen.add(cursor)

    def index_by_contact(self, token: str) -> Dict[str, dict]:
        """Contact id -> {'id', 'balance'} for every destination account."""
        index = {}
        for account in self.list_all(token):
            contact_id = account_contact_id(account)
            if contact_id and account.get('id'):
                index[contact_id] = {'id': account['id'], 'balance': account_balance(account)}
        return index

    def get_account(self, token: str, account_id: str) -> Optional[dict]:
        response = self.client.get(token, f'loyalty-accounts/v1/accounts/{account_id}')
        if not response.ok:
            return None
        return response.data.get('account') or response.data

    def create(self, token: str, contact_id: str) -> Dict[str, Any]:
        """Create an account for a destination contact; retries with the nested body shape."""
        response = None
        for body in ({'contactId': contact_id}, {'account': {'contactId': contact_id}}):
            response = self.client.post(token, 'loyalty-accounts/v1/accounts', body)
            account_id = response.json_path('account.id') or response.json_path('id')
            if response.ok and account_id:
                return {'ok': True, 'id': account_id, 'data': response.data}
        return {'ok': False, 'status': response.status, 'error': response.body or response.error()}

    def _revision(self, token: str, account_id: str) -> int:
        account = self.get_account(token, account_id) or {}
        try:
            return max(1, int(account.get('revision') or 1))
        except (TypeError, ValueError):
            return 1

    def adjust_points(
        self,
        token: str,
        account_id: str,
        amount: int,
        revision: Optional[int] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Add ``amount`` points (negative to deduct).

        One Idempotency-Key covers the whole adjustment, retries included, so
        a retried request is never applied twice. A revision conflict re-reads
        the account and retries once.
        """
        if not amount:
            return {'ok': True}

        path = f'loyalty-accounts/v1/accounts/{account_id}/adjust-points'
        revision = revision or self._revision(token, account_id)
        idempotency_key = idempotency_key or str(uuid.uuid4())

        response = None
        for attempt in range(2):
            response = self.client.post(
                token,
                path,
                {'amount': int(amount), 'revision': revision},
                headers={'Idempotency-Key': idempotency_key},
            )
            if response.ok:
                return {'ok': True}
            if attempt == 0 and response.status in REVISION_CONFLICT_STATUSES:
                revision = self._revision(token, account_id)
                continue
            break

        return {'ok': False, 'status': response.status, 'error': response.body or response.error()}
