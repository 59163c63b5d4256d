"""
Contacts API (v4): contacts, labels, extended fields, notes, attachments
and email subscriptions.
"""
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .base import RemoteAdapter, create_result
from ...utils.payloads import chunked

logger = logging.getLogger(__name__)

EMAIL_LOOKUP_CHUNK = 50


class ContactAdapter(RemoteAdapter):
    """
    Contacts plus the per-contact side resources.

    Label keys and extended-field keys are store-specific; the ensure_*
    helpers find-or-create by display name and cache the result per token
    for the rest of the run.
    """

    PAGE_SIZE = 1000

    def __init__(self, client):
        super().__init__(client)
        self._label_cache: Dict[tuple, str] = {}
        self._field_cache: Dict[tuple, str] = {}

    # ==================== CONTACTS ====================

    def list_all(self, token: str, filters: Optional[dict] = None) -> Iterator[dict]:
        def fetch(offset, limit):
            params = {'paging.limit': limit, 'paging.offset': offset, 'fieldsets': 'FULL'}
            if filters:
                params.update(filters)
            return self.client.get(token, 'contacts/v4/contacts', params)

        return self._offset_pages(fetch, 'contacts', self.PAGE_SIZE, 'Contacts list')

    def find_by_natural_key(self, token: str, email: str) -> Optional[dict]:
        if not email:
            return None
        response = self.client.post(token, 'contacts/v4/contacts/query', {
            'query': {
                'filter': {'info.emails.items.email': {'$eq': email}},
                'paging': {'limit': 1},
            }
        })
        if response.ok:
            contacts = response.data.get('contacts') or []
            return contacts[0] if contacts else None
        return None

    def index_emails(self, token: str, emails: Iterable[str]) -> Dict[str, str]:
        """
        Map lowercased email -> destination contact id.

        Queries in chunks of at most 50 addresses so a large import costs a
        handful of calls instead of one per row.
        """
        wanted = sorted({e.strip().lower() for e in emails if e and e.strip()})
        found: Dict[str, str] = {}
        for batch in chunked(wanted, EMAIL_LOOKUP_CHUNK):
            response = self.client.post(token, 'contacts/v4/contacts/query', {
                'query': {
                    'filter': {'primaryInfo.email': {'$in': batch}},
                    'paging': {'limit': len(batch)},
                },
                'fieldsets': ['FULL'],
            })
            if not response.ok:
                logger.warning(f"Contact email lookup failed for {len(batch)} email(s): {response.error()}")
                continue
            for contact in response.data.get('contacts') or []:
                contact_id = contact.get('id')
                primary = (contact.get('primaryInfo') or {}).get('email') or ''
                if contact_id and primary.lower() in batch:
                    found.setdefault(primary.lower(), contact_id)
        return found

    def create(self, token: str, info: dict, allow_duplicates: bool = True) -> Dict[str, Any]:
        response = self.client.post(token, 'contacts/v4/contacts', {
            'info': info,
            'allowDuplicates': allow_duplicates,
        })
        return create_result(response, 'contact.id')

    # ==================== LABELS ====================

    def list_labels(self, token: str) -> Dict[str, str]:
        """Label key -> display name."""
        labels = {}
        pages = self._offset_pages(
            lambda offset, limit: self.client.get(token, 'contacts/v4/labels', {
                'paging.limit': limit, 'paging.offset': offset
            }),
            'labels', 1000, 'Labels list'
        )
        for label in pages:
            if label.get('key'):
                labels[label['key']] = label.get('displayName') or label['key']
        return labels

    def ensure_label(self, token: str, display_name: str) -> Optional[str]:
        """Find-or-create a label by display name; returns its key."""
        cache_key = (token, display_name)
        if cache_key in self._label_cache:
            return self._label_cache[cache_key]

        response = self.client.post(token, 'contacts/v4/labels', {'displayName': display_name})
        if not response.ok:
            logger.warning(f"Label find-or-create failed for '{display_name}': {response.error()}")
            return None
        key = response.json_path('label.key') or response.json_path('key')
        if key:
            self._label_cache[cache_key] = key
        return key

    def label_contact(self, token: str, contact_id: str, label_keys: List[str]) -> Dict[str, Any]:
        keys = sorted({k for k in label_keys if k})
        if not keys:
            return {'ok': True}
        response = self.client.post(token, f'contacts/v4/contacts/{contact_id}/labels', {'labelKeys': keys})
        return {'ok': response.ok, 'status': response.status, 'error': None if response.ok else response.body}

    # ==================== EXTENDED FIELDS ====================

    def list_extended_fields(self, token: str) -> Dict[str, dict]:
        """Field key -> {'displayName', 'dataType', 'fieldType'}."""
        fields = {}
        pages = self._offset_pages(
            lambda offset, limit: self.client.get(token, 'contacts/v4/extended-fields', {
                'paging.limit': limit, 'paging.offset': offset
            }),
            'extendedFields', 100, 'Extended fields list'
        )
        for field in pages:
            if field.get('key'):
                fields[field['key']] = {
                    'displayName': field.get('displayName'),
                    'dataType': field.get('dataType') or 'TEXT',
                    'fieldType': field.get('fieldType'),
                }
        return fields

    def ensure_extended_field(self, token: str, display_name: str, data_type: str = 'TEXT') -> Optional[str]:
        """Find-or-create a custom field by display name; returns its key."""
        cache_key = (token, display_name)
        if cache_key in self._field_cache:
            return self._field_cache[cache_key]

        response = self.client.post(token, 'contacts/v4/extended-fields', {
            'displayName': display_name,
            'dataType': data_type or 'TEXT',
        })
        if not response.ok:
            logger.warning(f"Extended field find-or-create failed for '{display_name}': {response.error()}")
            return None
        key = response.json_path('field.key') or response.json_path('key')
        if key:
            self._field_cache[cache_key] = key
        return key

    # ==================== NOTES ====================

    def list_notes(self, token: str, contact_id: str) -> List[dict]:
        response = self.client.get(token, 'contacts/v4/notes', {
            'contactId': contact_id,
            'paging.limit': 100,
        })
        return response.data.get('notes') or [] if response.ok else []

    def create_note(self, token: str, contact_id: str, content: str) -> Dict[str, Any]:
        response = self.client.post(token, 'contacts/v4/notes', {
            'note': {'contactId': contact_id, 'content': content}
        })
        return create_result(response, 'note.id')

    # ==================== ATTACHMENTS ====================

    def list_attachments(self, token: str, contact_id: str) -> List[dict]:
        response = self.client.get(token, f'contacts/v4/attachments/{contact_id}', {'paging.limit': 100})
        return response.data.get('attachments') or [] if response.ok else []

    def download_attachment(self, token: str, contact_id: str, attachment_id: str) -> Optional[bytes]:
        response = self.client.get(token, f'contacts/v4/attachments/{contact_id}/{attachment_id}')
        return response.content if response.ok else None

    def copy_attachment(self, token: str, contact_id: str, file_name: str, mime_type: str, content: bytes) -> Dict[str, Any]:
        """Request a signed upload URL on the destination contact, then PUT the bytes."""
        response = self.client.post(token, f'contacts/v4/attachments/{contact_id}/upload-url', {
            'fileName': file_name,
            'mimeType': mime_type,
        })
        upload_url = response.json_path('uploadUrl') if response.ok else None
        if not upload_url:
            return {'ok': False, 'status': response.status, 'error': response.body or 'No uploadUrl in response'}

        uploaded = self.client.upload(upload_url, content, mime_type)
        if uploaded.status in (200, 201):
            return {'ok': True}
        return {'ok': False, 'status': uploaded.status, 'error': uploaded.body}

    # ==================== SUBSCRIPTIONS ====================

    def upsert_email_subscription(self, token: str, email: str, status: str) -> Dict[str, Any]:
        response = self.client.post(token, 'email-marketing/v1/email-subscriptions', {
            'emailSubscription': {'email': email, 'subscriptionStatus': (status or 'NOT_SET').upper()}
        })
        return {'ok': response.ok, 'status': response.status, 'error': None if response.ok else response.body}
