"""
Tests for creation-date and email extraction strategies.
"""
from storemigrator.utils.extraction import (
    LOYALTY_DATE_STRATEGIES,
    extract_email,
    get_path,
    oldest_first,
    parse_timestamp,
    resolve_created_timestamp,
)


class TestParseTimestamp:
    """Tests for parse_timestamp."""

    def test_epoch_seconds_and_millis(self):
        """Large epoch numbers are treated as milliseconds."""
        assert parse_timestamp(1700000000) == 1700000000.0
        assert parse_timestamp(1700000000000) == 1700000000.0

    def test_iso_string_with_zulu(self):
        """ISO-8601 strings with a Z suffix parse as UTC."""
        assert parse_timestamp('2023-11-14T22:13:20Z') == 1700000000.0

    def test_digit_string(self):
        """Epoch digit strings are parsed as timestamps."""
        assert parse_timestamp('1700000000000') == 1700000000.0

    def test_unusable_values(self):
        """Garbage, blanks and booleans give None."""
        assert parse_timestamp('not a date') is None
        assert parse_timestamp('') is None
        assert parse_timestamp(True) is None
        assert parse_timestamp(None) is None


class TestCreatedTimestamp:
    """Tests for resolve_created_timestamp and oldest_first."""

    def test_first_strategy_wins(self):
        """createdDate is preferred over nested audit dates."""
        item = {'createdDate': '2023-01-01T00:00:00Z', 'audit': {'createdDate': '2020-01-01T00:00:00Z'}}

        assert resolve_created_timestamp(item) == parse_timestamp('2023-01-01T00:00:00Z')

    def test_nested_path(self):
        """Nested date fields are found."""
        item = {'metadata': {'dateCreated': 1700000000}}

        assert resolve_created_timestamp(item) == 1700000000.0

    def test_loyalty_falls_back_to_activity(self):
        """Loyalty accounts without a creation date sort by their last activity."""
        item = {'lastActivityDate': '2023-11-14T22:13:20Z'}

        assert resolve_created_timestamp(item) is None
        assert resolve_created_timestamp(item, LOYALTY_DATE_STRATEGIES) == 1700000000.0

    def test_oldest_first_with_undated_last(self):
        """Dated items ascend; undated items keep list order at the end."""
        items = [
            {'id': 'undated-a'},
            {'id': 'new', 'createdDate': '2024-01-01T00:00:00Z'},
            {'id': 'undated-b'},
            {'id': 'old', 'createdDate': '2020-01-01T00:00:00Z'},
        ]

        assert [i['id'] for i in oldest_first(items)] == ['old', 'new', 'undated-a', 'undated-b']

    def test_oldest_first_is_stable(self):
        """Items sharing a timestamp keep their relative order."""
        items = [{'id': n, 'createdDate': 1700000000} for n in ('a', 'b', 'c')]

        assert [i['id'] for i in oldest_first(items)] == ['a', 'b', 'c']


class TestEmailExtraction:
    """Tests for extract_email and get_path."""

    def test_contact_info_list(self):
        """Emails under info.emails.items are found and lowercased."""
        item = {'info': {'emails': {'items': [{'email': ' Ann@Example.COM '}]}}}

        assert extract_email(item) == 'ann@example.com'

    def test_loyalty_contact_email(self):
        """Loyalty accounts expose the email on their contact."""
        item = {'contact': {'email': 'Bob@example.com'}}

        assert extract_email(item) == 'bob@example.com'

    def test_member_login_email(self):
        """Members fall back to their login email."""
        assert extract_email({'loginEmail': 'm@example.com'}) == 'm@example.com'

    def test_missing_email(self):
        """Items without an email give None."""
        assert extract_email({'info': {'emails': {'items': []}}}) is None
        assert extract_email(None) is None

    def test_get_path_indexes_lists(self):
        """Numeric segments index into lists; out of range gives the default."""
        data = {'a': [{'b': 1}]}

        assert get_path(data, 'a.0.b') == 1
        assert get_path(data, 'a.3.b', 'x') == 'x'
