"""
Contacts and site members pipeline.

Pass 1 creates contacts oldest first, with their labels, custom fields,
notes, attachments, email subscription and linked member. Pass 2 replays the
member graph (badges and following edges) once every member exists, since
an edge can point at a member created later in pass 1. Contacts finished on
an earlier run still relink their member so edges to them converge.
"""
import logging
from typing import Dict, List, Optional

from .base import BasePipeline, RunContext
from ..adapters.contacts import ContactAdapter
from ..adapters.members import MemberAdapter
from ..id_remapper import CONTACT, MEMBER
from ...models import ContactMigration
from ...utils.extraction import extract_email, oldest_first
from ...utils.payloads import clean_empty, keep_keys, strip_keys

logger = logging.getLogger(__name__)

ALLOWED_INFO_KEYS = (
    'name', 'emails', 'phones', 'addresses', 'company', 'jobTitle',
    'birthdate', 'locale', 'extendedFields', 'picture',
)
LIST_INFO_KEYS = ('emails', 'phones', 'addresses')
VAT_ID_FIELD = 'invoices.vatId'
SYSTEM_FIELD_PREFIXES = ('emailSubscriptions.', 'contacts.')
MISSING_IDENTITY = 'Missing required fields (name/email/phone)'


def contact_key(contact: dict) -> Optional[str]:
    """Lowercased primary email, or ``contact:<id>`` for contacts without one."""
    email = extract_email(contact)
    if email:
        return email
    if contact.get('id'):
        return f"contact:{contact['id']}"
    return None


def contact_name(info: dict) -> Optional[str]:
    name = info.get('name') or {}
    if name.get('formatted'):
        return name['formatted']
    full = ' '.join(part for part in (name.get('first'), name.get('last')) if part)
    return full or None


def filter_contact_info(contact: dict) -> dict:
    """Allow-listed info fields; list fields keep only their ``items``."""
    info = contact.get('info') or contact
    filtered = keep_keys(info, ALLOWED_INFO_KEYS)
    for key in LIST_INFO_KEYS:
        items = (filtered.get(key) or {}).get('items') if isinstance(filtered.get(key), dict) else None
        if items:
            filtered[key] = {'items': list(items)}
        else:
            filtered.pop(key, None)
    return filtered


def has_identity(info: dict) -> bool:
    """A contact needs at least a name, an email or a phone."""
    name = info.get('name') or {}
    return bool(
        name.get('first') or name.get('last') or name.get('formatted')
        or (info.get('emails') or {}).get('items')
        or (info.get('phones') or {}).get('items')
    )


def is_system_field(key: str, display_name: Optional[str]) -> bool:
    if not display_name:
        return True
    return key.startswith(SYSTEM_FIELD_PREFIXES) or display_name.startswith(SYSTEM_FIELD_PREFIXES)


def badge_key(badge: dict) -> Optional[str]:
    return badge.get('badgeKey') or badge.get('key')


def source_label_keys(contact: dict) -> List[str]:
    labels = contact.get('labelKeys')
    if isinstance(labels, dict):
        labels = labels.get('items')
    if not labels:
        labels = ((contact.get('info') or {}).get('labelKeys') or {}).get('items')
    return sorted({key for key in labels or [] if isinstance(key, str)})


class ContactPipeline(BasePipeline):
    """
    Options:
        include_members: copy linked site members and their graph (default True)
        include_attachments: copy contact attachments (default True)
        default_subscription_status: used when the source has none (default NOT_SET)
    """

    entity_type = 'contacts'
    label = 'Contacts'
    model = ContactMigration
    adapter_classes = {'contacts': ContactAdapter, 'members': MemberAdapter}

    def migrate(self, ctx: RunContext) -> None:
        contacts = oldest_first(self.limit(ctx, self.contacts.list_all(ctx.from_token)))
        self.log.info(self.context, f'Fetched {len(contacts)} contact(s).')

        self._source_labels = self.contacts.list_labels(ctx.from_token)
        self._source_fields = self.contacts.list_extended_fields(ctx.from_token)
        self._member_graph: Dict[str, dict] = {}

        self.process_all(ctx, contacts, self.migrate_one)

        if self._member_graph:
            self.replay_member_graph(ctx)

    # ==================== PASS 1 ====================

    def migrate_one(self, ctx: RunContext, contact: dict) -> None:
        key = contact_key(contact)
        info = filter_contact_info(contact)
        entry = self.stage(
            ctx, key,
            contact_name=contact_name(info),
            source_contact_id=contact.get('id'),
        )
        if self.skip_finished(ctx, entry):
            if key and not key.startswith('contact:'):
                self.remapper.record_mapping(CONTACT, key, entry.destination_id)
            if not ctx.dry_run:
                self.run_dependent(ctx, f'member for {key}', self._copy_member, contact, extract_email(contact))
            return

        if not has_identity(info):
            self.fail(ctx, entry, MISSING_IDENTITY)
            return
        if self.skip_dry_run(ctx, entry):
            return

        email = extract_email(contact)
        if email:
            existing = self.contacts.find_by_natural_key(ctx.to_token, email)
            if existing and existing.get('id'):
                self.succeed(ctx, entry, existing['id'])
                self.remapper.record_mapping(CONTACT, email, existing['id'])
                self.log.info(self.context, f'Linked {email} to existing destination contact {existing["id"]}.')
                self.run_dependent(ctx, f'member for {email}', self._copy_member, contact, email)
                return

        payload = self.build_info(ctx, info)
        result = self.contacts.create(ctx.to_token, payload)
        if not result['ok']:
            self.fail(ctx, entry, result['error'])
            return

        contact_id = result['id']
        self.succeed(ctx, entry, contact_id)
        self.remapper.record_mapping(CONTACT, email, contact_id)

        self.run_dependent(ctx, f'labels for {contact_id}', self._copy_labels, contact, contact_id)
        self.run_dependent(ctx, f'notes for {contact_id}', self._copy_notes, contact, contact_id)
        if ctx.options.get('include_attachments', True):
            self.run_dependent(ctx, f'attachments for {contact_id}', self._copy_attachments, contact, contact_id)
        if email:
            self.run_dependent(ctx, f'subscription for {email}', self._copy_subscription, contact, email)
        self.run_dependent(ctx, f'member for {email or contact_id}', self._copy_member, contact, email)

    def build_info(self, ctx: RunContext, info: dict) -> dict:
        """Remap custom fields to destination keys and drop empties."""
        payload = strip_keys(info, ('extendedFields',))
        items = {}
        for key, value in ((info.get('extendedFields') or {}).get('items') or {}).items():
            if key == VAT_ID_FIELD:
                items[key] = value
                continue
            definition = self._source_fields.get(key)
            if not definition or is_system_field(key, definition.get('displayName')):
                continue
            target_key = self.contacts.ensure_extended_field(
                ctx.to_token, definition['displayName'], definition.get('dataType') or 'TEXT'
            )
            if target_key:
                items[target_key] = value
        if items:
            payload['extendedFields'] = {'items': items}
        return clean_empty(payload)

    def _copy_labels(self, ctx: RunContext, contact: dict, contact_id: str) -> None:
        target_keys = []
        for key in source_label_keys(contact):
            display_name = self._source_labels.get(key)
            if not display_name:
                continue
            target_key = self.contacts.ensure_label(ctx.to_token, display_name)
            if target_key:
                target_keys.append(target_key)
            else:
                self.dependent_error(ctx, f'label for {contact_id}', f"Could not map label '{display_name}'")
        if target_keys:
            result = self.contacts.label_contact(ctx.to_token, contact_id, target_keys)
            if not result['ok']:
                self.dependent_error(ctx, f'labels for {contact_id}', result['error'])

    def _copy_notes(self, ctx: RunContext, contact: dict, contact_id: str) -> None:
        if not contact.get('id'):
            return
        for note in self.contacts.list_notes(ctx.from_token, contact['id']):
            if not note.get('content'):
                continue
            result = self.contacts.create_note(ctx.to_token, contact_id, note['content'])
            if not result['ok']:
                self.dependent_error(ctx, f'note for {contact_id}', result['error'])

    def _copy_attachments(self, ctx: RunContext, contact: dict, contact_id: str) -> None:
        if not contact.get('id'):
            return
        for attachment in self.contacts.list_attachments(ctx.from_token, contact['id']):
            file_name = attachment.get('fileName') or 'attachment'
            mime_type = attachment.get('mimeType') or 'application/octet-stream'
            content = self.contacts.download_attachment(ctx.from_token, contact['id'], attachment.get('id'))
            if not content:
                self.dependent_error(ctx, f'attachment {file_name} for {contact_id}', 'Download failed')
                continue
            result = self.contacts.copy_attachment(ctx.to_token, contact_id, file_name, mime_type, content)
            if not result['ok']:
                self.dependent_error(ctx, f'attachment {file_name} for {contact_id}', result['error'])

    def _copy_subscription(self, ctx: RunContext, contact: dict, email: str) -> None:
        status = (
            (contact.get('primaryEmail') or {}).get('subscriptionStatus')
            or (contact.get('primaryInfo') or {}).get('subscriptionStatus')
            or ctx.options.get('default_subscription_status')
            or 'NOT_SET'
        )
        result = self.contacts.upsert_email_subscription(ctx.to_token, email, status)
        if not result['ok']:
            self.dependent_error(ctx, f'subscription for {email}', result['error'])

    def _copy_member(self, ctx: RunContext, contact: dict, email: Optional[str]) -> None:
        if not ctx.options.get('include_members', True) or not contact.get('id'):
            return
        source_member = self.members.find_by_contact_id(ctx.from_token, contact['id'])
        if not source_member or not source_member.get('id'):
            return

        old_id = source_member['id']
        login_email = source_member.get('loginEmail') or email
        existing = self.members.find_by_natural_key(ctx.to_token, login_email) if login_email else None
        new_id = (existing or {}).get('id')

        if not new_id:
            body = {
                'loginEmail': login_email,
                'profile': strip_keys(source_member.get('profile') or {}, ('slug', 'photo')),
                'customFields': source_member.get('customFields'),
            }
            result = self.members.create(ctx.to_token, clean_empty(body))
            if not result['ok']:
                self.dependent_error(ctx, f'member for {login_email or contact["id"]}', result['error'])
                return
            new_id = result['id']

        self.remapper.record_mapping(MEMBER, old_id, new_id)
        self._member_graph[old_id] = {
            'badges': self.members.list_badges(ctx.from_token, old_id),
            'following': self.members.list_following(ctx.from_token, old_id),
        }

    # ==================== PASS 2 ====================

    def replay_member_graph(self, ctx: RunContext) -> None:
        """
        Assign badges and follow edges through the old -> new member map.

        Badges and edges already on the destination member are left alone,
        so replaying the graph of a member linked on an earlier run is a no-op
        apart from edges to members created since.
        """
        for old_id, graph in self._member_graph.items():
            new_id = self.remapper.translate(MEMBER, old_id)
            if not new_id:
                continue
            self.run_dependent(ctx, f'graph for member {new_id}', self._replay_member, old_id, new_id, graph)

        self.log.info(self.context, f'Replayed member graph for {len(self._member_graph)} member(s).')

    def _replay_member(self, ctx: RunContext, old_id: str, new_id: str, graph: dict) -> None:
        assigned = {badge_key(b) for b in self.members.list_badges(ctx.to_token, new_id)}
        for badge in graph['badges']:
            key = badge_key(badge)
            if not key or key in assigned:
                continue
            result = self.members.assign_badge(ctx.to_token, new_id, key)
            if not result['ok']:
                self.dependent_error(ctx, f'badge {key} for member {new_id}', result['error'])

        following = {m.get('id') for m in self.members.list_following(ctx.to_token, new_id)}
        for followed in graph['following']:
            followed_old = followed.get('id')
            followed_new = self.remapper.translate(MEMBER, followed_old)
            if not followed_new:
                logger.debug(f'Member {old_id} follows unmapped member {followed_old}; skipping edge')
                continue
            if followed_new in following:
                continue
            result = self.members.follow(ctx.to_token, new_id, followed_new)
            if not result['ok']:
                self.dependent_error(ctx, f'follow {followed_new} for member {new_id}', result['error'])
