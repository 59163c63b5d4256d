"""
Tests for the contacts and members pipeline.
"""
from storemigrator.models import ContactMigration
from storemigrator.services.id_remapper import CONTACT, MEMBER, IdRemapper
from storemigrator.services.pipelines import ContactPipeline
from storemigrator.services.pipelines.contacts import (
    MISSING_IDENTITY,
    contact_key,
    filter_contact_info,
    has_identity,
    is_system_field,
)

from conftest import FROM_STORE, OPERATOR_ID, TO_STORE, failed, mock_adapter, ok

DST_TOKEN = f'tok-{TO_STORE}'


def make_contact(contact_id, first=None, email=None, created=None, **info):
    data = {'id': contact_id, 'info': dict(info)}
    if first:
        data['info']['name'] = {'first': first}
    if email:
        data['info']['emails'] = {'items': [{'email': email}]}
    if created:
        data['createdDate'] = created
    return data


def contacts_adapter(contacts, **overrides):
    adapter = mock_adapter(
        list_all=contacts,
        list_labels={},
        list_extended_fields={},
        find_by_natural_key=None,
        list_notes=[],
        list_attachments=[],
        upsert_email_subscription=ok(),
        label_contact=ok(),
    )
    adapter.create.side_effect = lambda token, info: ok(f"d-{info['name']['first'].lower()}")
    for name, value in overrides.items():
        getattr(adapter, name).return_value = value
    return adapter


def members_adapter():
    return mock_adapter(find_by_contact_id=None)


class TestContactHelpers:
    """Tests for contact key and info shaping."""

    def test_contact_key_prefers_email(self):
        """Email is the key; contacts without one use their id."""
        assert contact_key(make_contact('c1', email='A@X.com')) == 'a@x.com'
        assert contact_key(make_contact('c1', first='Ann')) == 'contact:c1'

    def test_filter_contact_info_keeps_list_items(self):
        """List fields keep only their items; unknown fields drop."""
        contact = make_contact('c1', first='Ann', email='a@x.com', phones={'items': []}, revision=4)

        assert filter_contact_info(contact) == {
            'name': {'first': 'Ann'},
            'emails': {'items': [{'email': 'a@x.com'}]},
        }

    def test_has_identity(self):
        """A name, email or phone counts as identity."""
        assert has_identity({'name': {'last': 'Smith'}}) is True
        assert has_identity({'phones': {'items': [{'phone': '555'}]}}) is True
        assert has_identity({'company': 'Acme'}) is False

    def test_is_system_field(self):
        """System and unnamed fields are not copied."""
        assert is_system_field('emailSubscriptions.status', 'Status') is True
        assert is_system_field('custom.size', None) is True
        assert is_system_field('custom.size', 'Size') is False


class TestContactPipeline:
    """Tests for ContactPipeline pass 1."""

    def test_oldest_first_with_undated_last(self, run_pipeline):
        """Contacts are created oldest first; undated ones follow in list order."""
        contacts = contacts_adapter([
            make_contact('c-new', 'New', 'new@x.com', '2024-01-01T00:00:00Z'),
            make_contact('c-undated', 'Undated'),
            make_contact('c-old', 'Old', 'old@x.com', '2020-01-01T00:00:00Z'),
        ])

        result = run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        created = [call[0][1]['name']['first'] for call in contacts.create.call_args_list]
        assert created == ['Old', 'New', 'Undated']
        assert result.imported == 3

    def test_missing_identity_fails(self, run_pipeline, make_ledger):
        """A contact with no name, email or phone is failed without a create."""
        contacts = contacts_adapter([make_contact('c-empty', company='Acme')])

        result = run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        entry = make_ledger(ContactMigration).find_by_key('contact:c-empty')
        assert result.failed == 1
        assert entry.error_message == MISSING_IDENTITY
        contacts.create.assert_not_called()

    def test_existing_email_is_linked(self, run_pipeline, make_ledger, remapper):
        """A destination contact with the same email is linked instead of duplicated."""
        contacts = contacts_adapter(
            [make_contact('c1', 'Ann', 'Ann@X.com')],
            find_by_natural_key={'id': 'existing-1'},
        )

        result = run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        assert result.imported == 1
        contacts.create.assert_not_called()
        assert make_ledger(ContactMigration).find_by_key('ann@x.com').destination_id == 'existing-1'
        assert remapper.translate(CONTACT, 'ann@x.com') == 'existing-1'

    def test_labels_fields_and_subscription(self, run_pipeline):
        """Labels and custom fields map by display name; system fields are dropped."""
        contact = make_contact(
            'c1', 'Ann', 'ann@x.com',
            labelKeys={'items': ['custom.vip']},
            extendedFields={'items': {
                'custom.shoe': '42',
                'invoices.vatId': 'VAT1',
                'emailSubscriptions.effectiveEmail': 'ann@x.com',
            }},
        )
        contacts = contacts_adapter(
            [contact],
            list_labels={'custom.vip': 'VIP'},
            list_extended_fields={
                'custom.shoe': {'displayName': 'Shoe size', 'dataType': 'TEXT'},
                'emailSubscriptions.effectiveEmail': {'displayName': 'emailSubscriptions.effectiveEmail'},
            },
            ensure_extended_field='custom.shoe-size',
            ensure_label='custom.dst-vip',
        )

        run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        info = contacts.create.call_args[0][1]
        assert info['extendedFields'] == {'items': {'custom.shoe-size': '42', 'invoices.vatId': 'VAT1'}}
        contacts.label_contact.assert_called_once_with(DST_TOKEN, 'd-ann', ['custom.dst-vip'])
        contacts.upsert_email_subscription.assert_called_once_with(DST_TOKEN, 'ann@x.com', 'NOT_SET')

    def test_source_subscription_status_wins(self, run_pipeline):
        """The source subscription status is used when present."""
        contact = make_contact('c1', 'Ann', 'ann@x.com')
        contact['primaryEmail'] = {'subscriptionStatus': 'SUBSCRIBED'}
        contacts = contacts_adapter([contact])

        run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        contacts.upsert_email_subscription.assert_called_once_with(DST_TOKEN, 'ann@x.com', 'SUBSCRIBED')

    def test_notes_and_attachments_copied(self, run_pipeline):
        """Notes and attachment bytes are copied to the new contact."""
        contacts = contacts_adapter(
            [make_contact('c1', 'Ann', 'ann@x.com')],
            list_notes=[{'content': 'Prefers email'}, {'content': ''}],
            list_attachments=[{'id': 'att-1', 'fileName': 'id.pdf', 'mimeType': 'application/pdf'}],
            download_attachment=b'%PDF',
            create_note=ok(),
            copy_attachment=ok(),
        )

        run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        contacts.create_note.assert_called_once_with(DST_TOKEN, 'd-ann', 'Prefers email')
        contacts.copy_attachment.assert_called_once_with(DST_TOKEN, 'd-ann', 'id.pdf', 'application/pdf', b'%PDF')

    def test_attachment_download_failure_is_dependent(self, run_pipeline, make_ledger):
        """An attachment that cannot be downloaded does not fail the contact."""
        contacts = contacts_adapter(
            [make_contact('c1', 'Ann', 'ann@x.com')],
            list_attachments=[{'id': 'att-1', 'fileName': 'id.pdf'}],
            download_attachment=None,
        )

        result = run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        assert make_ledger(ContactMigration).find_by_key('ann@x.com').status == 'success'
        assert 'Contacts attachment id.pdf for d-ann: Download failed' in result.errors

    def test_rerun_is_idempotent(self, run_pipeline):
        """A second run skips every finished contact."""
        contacts = contacts_adapter([make_contact('c1', 'Ann', 'ann@x.com')])
        run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        result = run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        assert result.skipped == 1
        assert contacts.create.call_count == 1

    def test_failed_create_retried_next_run(self, run_pipeline, make_ledger):
        """A failed contact is re-armed and created on the next run."""
        contacts = contacts_adapter([make_contact('c1', 'Ann', 'ann@x.com')])
        contacts.create.side_effect = [failed('HTTP 500'), ok('d-ann')]

        first = run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())
        second = run_pipeline(ContactPipeline, contacts=contacts, members=members_adapter())

        assert first.failed == 1
        assert second.imported == 1
        assert make_ledger(ContactMigration).find_by_key('ann@x.com').destination_id == 'd-ann'


class TestMemberGraph:
    """Tests for member copy and the pass 2 graph replay."""

    def _members(self):
        members = mock_adapter(find_by_natural_key=None, assign_badge=ok(), follow=ok())
        members.find_by_contact_id.side_effect = lambda token, cid: {
            'id': f'm-{cid}', 'loginEmail': f'{cid}@x.com', 'profile': {'nickname': cid, 'slug': 'old-slug'},
        }
        members.create.side_effect = lambda token, body: ok(f"new-{body['loginEmail']}")
        members.list_badges.side_effect = lambda token, mid: [{'badgeKey': 'gold'}] if mid == 'm-a' else []
        members.list_following.side_effect = (
            lambda token, mid: [{'id': 'm-b'}] if mid == 'm-a' else [{'id': 'm-stranger'}]
        )
        return members

    def test_edges_replayed_after_all_members_exist(self, run_pipeline, remapper):
        """A follows B even though B is created after A."""
        contacts = contacts_adapter([
            make_contact('a', 'A', 'a@x.com', '2020-01-01T00:00:00Z'),
            make_contact('b', 'B', 'b@x.com', '2021-01-01T00:00:00Z'),
        ])
        members = self._members()

        result = run_pipeline(ContactPipeline, contacts=contacts, members=members)

        assert result.failed == 0
        assert remapper.translate(MEMBER, 'm-a') == 'new-a@x.com'
        members.follow.assert_called_once_with(DST_TOKEN, 'new-a@x.com', 'new-b@x.com')
        members.assign_badge.assert_called_once_with(DST_TOKEN, 'new-a@x.com', 'gold')
        assert members.create.call_args_list[0][0][1] == {'loginEmail': 'a@x.com', 'profile': {'nickname': 'a'}}

    def test_members_can_be_excluded(self, run_pipeline):
        """include_members=False skips member lookups."""
        contacts = contacts_adapter([make_contact('a', 'A', 'a@x.com')])
        members = self._members()

        run_pipeline(ContactPipeline, options={'include_members': False}, contacts=contacts, members=members)

        members.find_by_contact_id.assert_not_called()


class TestResumedMemberGraph:
    """Member graph convergence across interrupted runs."""

    def _destination_members(self):
        """Members adapter whose destination side remembers created members and follow edges."""
        created = {}
        following = {}

        def create(token, body):
            created[body['loginEmail']] = f"new-{body['loginEmail']}"
            return ok(created[body['loginEmail']])

        def follow(token, member_id, target_id):
            following.setdefault(member_id, []).append({'id': target_id})
            return ok()

        members = mock_adapter(list_badges=[])
        members.find_by_contact_id.side_effect = lambda token, cid: {'id': f'm-{cid}', 'loginEmail': f'{cid}@x.com'}
        members.find_by_natural_key.side_effect = lambda token, email: (
            {'id': created[email]} if email in created else None
        )
        members.create.side_effect = create
        members.follow.side_effect = follow
        members.list_following.side_effect = lambda token, mid: (
            [{'id': 'm-b'}] if mid == 'm-a' else list(following.get(mid, []))
        )
        return members

    def _run(self, audit_log, tokens, contacts, members):
        """Each run gets its own remapper, as separate processes would."""
        pipeline = ContactPipeline(None, tokens, audit_log, IdRemapper(), contacts=contacts, members=members)
        return pipeline.run(OPERATOR_ID, FROM_STORE, TO_STORE)

    def test_edge_to_member_from_earlier_run_is_replayed(self, audit_log, tokens, make_ledger):
        """A (done in run 1) follows B (failed in run 1, created in run 2); run 2 adds the edge."""
        contacts = contacts_adapter([
            make_contact('a', 'A', 'a@x.com', '2020-01-01T00:00:00Z'),
            make_contact('b', 'B', 'b@x.com', '2021-01-01T00:00:00Z'),
        ])
        contacts.create.side_effect = [ok('d-a'), failed('HTTP 500', status=500), ok('d-b')]
        members = self._destination_members()

        first = self._run(audit_log, tokens, contacts, members)
        members.follow.assert_not_called()

        second = self._run(audit_log, tokens, contacts, members)

        assert (first.imported, first.failed) == (1, 1)
        assert (second.imported, second.skipped, second.failed) == (1, 1, 0)
        members.follow.assert_called_once_with(DST_TOKEN, 'new-a@x.com', 'new-b@x.com')
        assert members.create.call_count == 2
        assert make_ledger(ContactMigration).find_by_key('b@x.com').status == 'success'

    def test_existing_edges_not_resent(self, audit_log, tokens):
        """A further run finds the edge on the destination and sends nothing."""
        contacts = contacts_adapter([
            make_contact('a', 'A', 'a@x.com', '2020-01-01T00:00:00Z'),
            make_contact('b', 'B', 'b@x.com', '2021-01-01T00:00:00Z'),
        ])
        members = self._destination_members()

        self._run(audit_log, tokens, contacts, members)
        result = self._run(audit_log, tokens, contacts, members)

        assert result.skipped == 2
        assert result.errors == []
        assert members.follow.call_count == 1
        assert members.create.call_count == 2

    def test_dry_run_does_not_relink(self, audit_log, tokens):
        """A dry run does not touch members of finished contacts."""
        contacts = contacts_adapter([make_contact('a', 'A', 'a@x.com')])
        members = self._destination_members()
        self._run(audit_log, tokens, contacts, members)
        members.reset_mock()

        pipeline = ContactPipeline(None, tokens, audit_log, IdRemapper(), contacts=contacts, members=members)
        pipeline.run(OPERATOR_ID, FROM_STORE, TO_STORE, {'dry_run': True})

        members.find_by_contact_id.assert_not_called()
