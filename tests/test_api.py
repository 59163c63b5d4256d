"""
Tests for the stores and migrations API endpoints.
"""
from unittest.mock import MagicMock, patch

from storemigrator.extensions import db
from storemigrator.models import CouponMigration, MigrationStore
from storemigrator.services.migration_logger import MigrationLogger
from storemigrator.services.orchestrator import DEPENDENCY_ORDER, MigrationOrchestrator, MigrationSummary
from storemigrator.services.pipelines import PipelineResult
from storemigrator.utils.errors import internal_error
from storemigrator.utils.exceptions import NotFoundError, RemoteApiError, ValidationError

from conftest import FROM_STORE, OPERATOR_ID, TO_STORE, mock_adapter, ok

FROM_CONFIG = 'storemigrator.api.migrations.MigrationOrchestrator.from_config'


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client):
        """Health endpoint reports the service name."""
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy', 'service': 'store-migrator'}


class TestOperatorHeader:
    """Tests for operator identification."""

    def test_non_integer_operator_rejected(self, client):
        """A non-numeric X-Operator-Id is a validation error."""
        response = client.get('/api/stores', headers={'X-Operator-Id': 'abc'})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'

    def test_missing_header_falls_back_outside_production(self, app, client):
        """Without the header, development uses the default operator."""
        db.session.add(MigrationStore(user_id=app.config['MIGRATION_DEFAULT_OPERATOR_ID'], instance_id='inst-default'))
        db.session.commit()

        response = client.get('/api/stores')

        assert response.status_code == 200
        assert response.get_json()['total'] == 1

    def test_missing_header_rejected_in_production(self, app, client):
        """Production requires the operator header."""
        app.config['ENV_NAME'] = 'production'

        response = client.get('/api/stores')

        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'AUTH_REQUIRED'


class TestStoresApi:
    """Tests for /api/stores."""

    def test_register_and_list(self, client, operator_headers):
        """A registered store is listed without its token."""
        response = client.post('/api/stores', json={'instance_id': FROM_STORE, 'store_name': 'Old shop'},
                               headers=operator_headers)

        assert response.status_code == 201
        assert response.get_json()['instance_id'] == FROM_STORE
        assert 'instance_token' not in response.get_json()

        listing = client.get('/api/stores', headers=operator_headers).get_json()
        assert listing['total'] == 1
        assert listing['stores'][0]['store_name'] == 'Old shop'

    def test_instance_id_required(self, client, operator_headers):
        """Registering a store needs an instance id."""
        response = client.post('/api/stores', json={'store_name': 'x'}, headers=operator_headers)

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'MISSING_FIELD'

    def test_duplicate_store_conflict(self, client, operator_headers):
        """Registering the same instance twice is a conflict."""
        client.post('/api/stores', json={'instance_id': FROM_STORE}, headers=operator_headers)

        response = client.post('/api/stores', json={'instance_id': FROM_STORE}, headers=operator_headers)

        assert response.status_code == 409
        assert response.get_json()['error']['code'] == 'DUPLICATE_ENTRY'

    def test_stores_scoped_to_operator(self, client, operator_headers):
        """Operators only see their own stores."""
        client.post('/api/stores', json={'instance_id': FROM_STORE}, headers=operator_headers)

        listing = client.get('/api/stores', headers={'X-Operator-Id': '99'}).get_json()

        assert listing['total'] == 0

    def test_delete(self, client, operator_headers):
        """Deleting a store twice gives 404 the second time."""
        store_id = client.post('/api/stores', json={'instance_id': FROM_STORE}, headers=operator_headers).get_json()['id']

        response = client.delete(f'/api/stores/{store_id}', headers=operator_headers)

        assert response.get_json() == {'success': True, 'deleted': store_id}
        assert client.delete(f'/api/stores/{store_id}', headers=operator_headers).status_code == 404

    def test_delete_unknown_store(self, client, operator_headers):
        """Deleting a store the operator does not own is a store-not-found error."""
        response = client.delete('/api/stores/999', headers=operator_headers)

        assert response.status_code == 404
        assert response.get_json()['error'] == {'message': 'Store 999 not found', 'code': 'STORE_NOT_FOUND'}


class TestRunApi:
    """Tests for running migrations over HTTP."""

    def _summary(self):
        return MigrationSummary(FROM_STORE, TO_STORE, results=[PipelineResult('coupons', 'Coupons', imported=1)])

    def test_entities(self, client):
        """Entity types are listed in dependency order."""
        response = client.get('/api/migrations/entities')

        assert response.get_json() == {'entities': list(DEPENDENCY_ORDER)}

    def test_run_passes_operator_and_options(self, client, operator_headers):
        """The run route passes operator, stores, entities and parsed options."""
        orchestrator = MagicMock()
        orchestrator.run.return_value = self._summary()

        with patch(FROM_CONFIG, return_value=orchestrator):
            response = client.post('/api/migrations/run', headers=operator_headers, json={
                'from_store': FROM_STORE,
                'to_store': TO_STORE,
                'entities': ['coupons'],
                'options': {'max': '5', 'dry_run': 1},
            })

        assert response.status_code == 200
        assert response.get_json()['message'] == 'Migration completed.\nCoupons: imported=1, skipped=0, failed=0'
        orchestrator.run.assert_called_once_with(
            OPERATOR_ID, FROM_STORE, TO_STORE, ['coupons'], {'max': 5, 'dry_run': True}
        )

    def test_single_entity_route(self, client, operator_headers):
        """The per-entity route runs only that entity type."""
        orchestrator = MagicMock()
        orchestrator.run.return_value = self._summary()

        with patch(FROM_CONFIG, return_value=orchestrator):
            client.post('/api/migrations/coupons', headers=operator_headers,
                        json={'from_store': FROM_STORE, 'to_store': TO_STORE})

        assert orchestrator.run.call_args[0][3] == ['coupons']

    def test_unknown_entity(self, client, operator_headers, tokens):
        """An unknown entity type is rejected before anything runs."""
        orchestrator = MigrationOrchestrator(None, tokens, MigrationLogger())

        with patch(FROM_CONFIG, return_value=orchestrator):
            response = client.post('/api/migrations/giftcards', headers=operator_headers,
                                   json={'from_store': FROM_STORE, 'to_store': TO_STORE})

        assert response.status_code == 400
        assert response.get_json()['error'] == {
            'message': 'Unknown entity type: giftcards',
            'code': 'UNKNOWN_ENTITY_TYPE',
        }

    def test_stores_required(self, client, operator_headers):
        """Both stores are required to run."""
        response = client.post('/api/migrations/run', headers=operator_headers, json={'from_store': FROM_STORE})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'MISSING_FIELD'

    def test_bad_options(self, client, operator_headers):
        """A non-positive max is rejected with its message."""
        body = {'from_store': FROM_STORE, 'to_store': TO_STORE, 'options': {'max': 0}}

        response = client.post('/api/migrations/run', headers=operator_headers, json=body)

        assert response.status_code == 400
        assert response.get_json()['error']['message'] == 'options.max must be positive'
        assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'

    def test_entities_must_be_list(self, client, operator_headers):
        """A string entities value is rejected."""
        body = {'from_store': FROM_STORE, 'to_store': TO_STORE, 'entities': 'coupons'}

        response = client.post('/api/migrations/run', headers=operator_headers, json=body)

        assert response.status_code == 400

    def test_end_to_end_run_then_ledger_and_logs(self, client, operator_headers, tokens):
        """A real run against mocked adapters is visible through the ledger and log endpoints."""
        coupons = mock_adapter(
            list_all=[{'id': 'c1', 'specification': {'code': 'WELCOME', 'name': 'Welcome', 'startTime': 'x'}}],
            index_by_code={},
            create=ok('dc-1'),
        )
        orchestrator = MigrationOrchestrator(None, tokens, MigrationLogger(), adapters={'coupons': coupons})

        with patch(FROM_CONFIG, return_value=orchestrator):
            response = client.post('/api/migrations/coupons', headers=operator_headers,
                                   json={'from_store': FROM_STORE, 'to_store': TO_STORE})

        data = response.get_json()
        assert data['has_errors'] is False
        assert data['results']['coupons']['imported'] == 1

        ledger = client.get(
            f'/api/migrations/coupons/ledger?from_store={FROM_STORE}&to_store={TO_STORE}&status=success',
            headers=operator_headers,
        ).get_json()
        assert ledger['counts']['success'] == 1
        assert ledger['entries'][0]['source_key'] == 'WELCOME'
        assert ledger['entries'][0]['destination_id'] == 'dc-1'
        assert ledger['entries'][0]['entity_type'] == 'coupons'

        logs = client.get('/api/migrations/logs?limit=1', headers=operator_headers).get_json()['logs']
        assert logs[0]['action'] == 'Migration'
        assert logs[0]['details'].startswith('Migration completed.')


class TestLedgerApi:
    """Tests for the ledger endpoint."""

    def test_unknown_entity(self, client, operator_headers):
        """The ledger of an unknown entity type is a bad request."""
        response = client.get(f'/api/migrations/giftcards/ledger?from_store={FROM_STORE}&to_store={TO_STORE}',
                              headers=operator_headers)

        assert response.status_code == 400

    def test_invalid_status(self, client, operator_headers):
        """An unknown status filter is rejected."""
        response = client.get(
            f'/api/migrations/coupons/ledger?from_store={FROM_STORE}&to_store={TO_STORE}&status=done',
            headers=operator_headers,
        )

        assert response.status_code == 400
        assert response.get_json()['error']['message'] == 'Invalid status: done'

    def test_scoped_to_operator(self, client, operator_headers, make_ledger):
        """Ledger rows of other operators are neither listed nor counted."""
        ledger = make_ledger(CouponMigration, operator_id=99)
        ledger.mark_result(ledger.claim('OTHER'), 'failed', error_message='x')

        data = client.get(f'/api/migrations/coupons/ledger?from_store={FROM_STORE}&to_store={TO_STORE}',
                          headers=operator_headers).get_json()

        assert data['entries'] == []
        assert data['counts']['failed'] == 0


class TestErrorHandling:
    """Tests for exception to JSON error mapping."""

    def test_exceptions_carry_status_and_code(self):
        """Each exception knows its HTTP status and error code."""
        assert (NotFoundError('Store', 5).http_status, NotFoundError('Store', 5).code) == (404, 'STORE_NOT_FOUND')
        error = ValidationError('options.max must be positive', 'options.max')
        assert (error.http_status, error.code, error.field) == (400, 'VALIDATION_ERROR', 'options.max')

    def test_remote_error_rendered_by_handler(self, app, client):
        """A RemoteApiError escaping a view becomes a 502 JSON error."""
        def failing_view():
            raise RemoteApiError('list coupons failed: HTTP 503', 503, 'down')

        app.add_url_rule('/_raise_remote', 'raise_remote', failing_view)

        response = client.get('/_raise_remote')

        assert response.status_code == 502
        assert response.get_json()['error'] == {
            'message': 'list coupons failed: HTTP 503',
            'code': 'REMOTE_API_ERROR',
        }

    def test_internal_error_hides_details(self, app):
        """internal_error returns only the message and code."""
        response, status = internal_error(details={'trace': 'secret'})

        assert status == 500
        assert response.get_json() == {
            'error': {'message': 'An unexpected error occurred', 'code': 'INTERNAL_ERROR'}
        }
