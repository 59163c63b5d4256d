"""
Tests for the remote platform client, token provider and adapter paging.
"""
import pytest
import requests
from unittest.mock import MagicMock, patch

from storemigrator.services.adapters.coupons import CouponAdapter
from storemigrator.services.adapters.loyalty import LoyaltyAdapter
from storemigrator.services.adapters.media import MediaAdapter
from storemigrator.services.platform_client import ApiResponse, PlatformClient, auth_header
from storemigrator.services.token_provider import TokenProvider
from storemigrator.utils.exceptions import RemoteApiError


def response(status=200, data=None, body=''):
    return ApiResponse(status, body, data or {})


class TestPlatformClient:
    """Tests for PlatformClient request handling."""

    def test_auth_header_prefixing(self):
        """Raw tokens get a Bearer prefix; prefixed tokens are left alone."""
        assert auth_header('abc') == 'Bearer abc'
        assert auth_header('Bearer abc') == 'Bearer abc'
        assert auth_header('bearer abc') == 'bearer abc'

    def test_retry_policy_mounted(self):
        """The session retries 429 and 5xx with backoff."""
        client = PlatformClient(max_retries=3, backoff_factor=0.5)
        retries = client._session.get_adapter('https://www.wixapis.com').max_retries

        assert retries.total == 3
        assert retries.backoff_factor == 0.5
        assert set(retries.status_forcelist) == {429, 500, 502, 503, 504}

    def test_network_error_becomes_status_zero(self):
        """Connection failures come back as a status-0 response with the error text."""
        session = MagicMock()
        session.request.side_effect = requests.exceptions.ConnectionError('refused')
        client = PlatformClient(session=session)

        result = client.get('tok', 'stores/v1/collections')

        assert result.status == 0
        assert result.ok is False
        assert 'refused' in result.body

    def test_request_builds_url_and_headers(self):
        """Relative paths join the base URL and carry the bearer token."""
        session = MagicMock()
        session.request.return_value = MagicMock(status_code=200, content=b'{"a": 1}', text='{"a": 1}', headers={})
        session.request.return_value.json.return_value = {'a': 1}
        client = PlatformClient(base_url='https://api.example.com/', session=session)

        result = client.post('tok', '/stores/v2/coupons', {'x': 1})

        args, kwargs = session.request.call_args
        assert args == ('POST', 'https://api.example.com/stores/v2/coupons')
        assert kwargs['headers']['Authorization'] == 'Bearer tok'
        assert kwargs['json'] == {'x': 1}
        assert result.data == {'a': 1}

    def test_non_dict_json_is_wrapped(self):
        """A top-level JSON list lands under items."""
        raw = MagicMock(status_code=200, content=b'[1]', text='[1]', headers={})
        raw.json.return_value = [1]

        assert ApiResponse.from_requests(raw).data == {'items': [1]}

    def test_json_path(self):
        """Dotted paths read nested response data."""
        result = response(data={'order': {'id': 'o-1'}})

        assert result.json_path('order.id') == 'o-1'
        assert result.json_path('order.missing') is None


class TestTokenProvider:
    """Tests for TokenProvider.get_access_token."""

    def _provider(self):
        return TokenProvider('https://oauth.example.com/token', 'app-id', 'app-secret')

    @patch('storemigrator.services.token_provider.requests.post')
    def test_grant_and_cache(self, mock_post):
        """A successful grant is cached for the provider's lifetime."""
        mock_post.return_value = MagicMock(status_code=200)
        mock_post.return_value.json.return_value = {'access_token': 'abc'}
        provider = self._provider()

        assert provider.get_access_token('inst-1') == 'abc'
        assert provider.get_access_token('inst-1') == 'abc'
        assert mock_post.call_count == 1
        assert mock_post.call_args[1]['json']['instance_id'] == 'inst-1'
        assert mock_post.call_args[1]['json']['grant_type'] == 'client_credentials'

    @patch('storemigrator.services.token_provider.requests.post')
    def test_failed_grant_returns_none(self, mock_post):
        """Non-200 responses give no token."""
        mock_post.return_value = MagicMock(status_code=401, text='bad credentials')

        assert self._provider().get_access_token('inst-1') is None

    @patch('storemigrator.services.token_provider.requests.post')
    def test_network_error_returns_none(self, mock_post):
        """A network error gives no token."""
        mock_post.side_effect = requests.exceptions.Timeout('slow')

        assert self._provider().get_access_token('inst-1') is None

    @patch('storemigrator.services.token_provider.requests.post')
    def test_missing_credentials(self, mock_post):
        """Without app credentials no request is made."""
        provider = TokenProvider('https://oauth.example.com/token', '', '')

        assert provider.get_access_token('inst-1') is None
        mock_post.assert_not_called()

    def test_from_config(self, app):
        """The provider reads the OAuth settings from Flask config."""
        provider = TokenProvider.from_config(app.config)

        assert provider.client_id == 'test-app-id'
        assert provider.oauth_url.endswith('/oauth2/token')


class TestAdapterPaging:
    """Tests for offset and cursor paging in adapters."""

    def test_offset_paging_reads_until_short_page(self):
        """Offset paging advances by the page length and stops on a short page."""
        client = MagicMock()
        client.post.side_effect = [
            response(data={'coupons': [{'id': str(n)} for n in range(CouponAdapter.PAGE_SIZE)]}),
            response(data={'coupons': [{'id': 'last'}]}),
        ]

        coupons = list(CouponAdapter(client).list_all('tok'))

        assert len(coupons) == CouponAdapter.PAGE_SIZE + 1
        second_query = client.post.call_args_list[1][0][2]['query']
        assert second_query['paging']['offset'] == CouponAdapter.PAGE_SIZE

    def test_failed_page_raises(self):
        """A failed list call raises so the pipeline can abort the entity."""
        client = MagicMock()
        client.post.return_value = response(status=500, body='oops')

        with pytest.raises(RemoteApiError):
            list(CouponAdapter(client).list_all('tok'))

    def test_cursor_paging_follows_next_cursor(self):
        """Cursor paging stops when no next cursor comes back."""
        client = MagicMock()
        client.get.side_effect = [
            response(data={'files': [{'id': 'f1'}], 'paging': {'nextCursor': 'c2'}}),
            response(data={'files': [{'id': 'f2'}]}),
        ]

        files = list(MediaAdapter(client).list_files('tok', 'folder-1'))

        assert [f['id'] for f in files] == ['f1', 'f2']
        assert client.get.call_args_list[1][0][2]['paging.cursor'] == 'c2'

    def test_coupon_index_by_code_normalizes(self):
        """Destination coupons are indexed by uppercased code."""
        client = MagicMock()
        client.post.return_value = response(data={'coupons': [{'id': 'c1', 'specification': {'code': 'save10'}}]})

        assert CouponAdapter(client).index_by_code('tok') == {'SAVE10': {'id': 'c1', 'specification': {'code': 'save10'}}}


class TestLoyaltyAdjustPoints:
    """Tests for delta point adjustment."""

    def test_zero_delta_is_noop(self):
        """A zero adjustment makes no request."""
        client = MagicMock()

        assert LoyaltyAdapter(client).adjust_points('tok', 'acc-1', 0) == {'ok': True}
        client.post.assert_not_called()

    def test_revision_conflict_retries_once(self):
        """A revision conflict re-reads the account and retries under the same idempotency key."""
        client = MagicMock()
        client.get.return_value = response(data={'account': {'revision': '4'}})
        client.post.side_effect = [response(status=409, body='revision mismatch'), response()]

        result = LoyaltyAdapter(client).adjust_points('tok', 'acc-1', 25, revision=3)

        assert result == {'ok': True}
        first, second = client.post.call_args_list
        assert first[0][2] == {'amount': 25, 'revision': 3}
        assert second[0][2] == {'amount': 25, 'revision': 4}
        assert first[1]['headers']['Idempotency-Key'] == second[1]['headers']['Idempotency-Key']

    def test_caller_idempotency_key_is_used(self):
        """An explicit key is sent as-is on every attempt."""
        client = MagicMock()
        client.get.return_value = response(data={'account': {'revision': '5'}})
        client.post.side_effect = [response(status=409, body='revision mismatch'), response(status=500, body='down')]

        result = LoyaltyAdapter(client).adjust_points('tok', 'acc-1', -10, revision=4, idempotency_key='adj-1')

        assert result['ok'] is False
        assert result['error'] == 'down'
        keys = [c[1]['headers']['Idempotency-Key'] for c in client.post.call_args_list]
        assert keys == ['adj-1', 'adj-1']

    def test_create_falls_back_to_nested_body(self):
        """Account creation retries with the nested body shape."""
        client = MagicMock()
        client.post.side_effect = [response(status=400, body='bad'), response(data={'account': {'id': 'acc-9'}})]

        result = LoyaltyAdapter(client).create('tok', 'dc-1')

        assert result['ok'] is True
        assert result['id'] == 'acc-9'
        assert client.post.call_args_list[1][0][2] == {'account': {'contactId': 'dc-1'}}
