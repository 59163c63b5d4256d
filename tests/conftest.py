"""
Shared fixtures for store migrator tests.

Every test runs against an in-memory SQLite database. Remote adapters are
MagicMock objects; no test touches the network.
"""
import pytest
from unittest.mock import MagicMock

from storemigrator import create_app
from storemigrator.extensions import db
from storemigrator.services.id_remapper import IdRemapper
from storemigrator.services.ledger_service import MigrationLedger
from storemigrator.services.migration_logger import MigrationLogger

OPERATOR_ID = 7
FROM_STORE = 'src-instance'
TO_STORE = 'dst-instance'


@pytest.fixture
def app():
    """Create test application."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def operator_headers():
    return {'X-Operator-Id': str(OPERATOR_ID)}


@pytest.fixture
def make_ledger(app):
    """Factory for a ledger on the default store pair."""
    def factory(model, to_store=TO_STORE, from_store=FROM_STORE, operator_id=OPERATOR_ID):
        return MigrationLedger(model, operator_id, from_store, to_store)
    return factory


@pytest.fixture
def remapper():
    return IdRemapper()


@pytest.fixture
def audit_log(app):
    """Structured logger bound to the test operator, persisting to migration_logs."""
    return MigrationLogger(operator_id=OPERATOR_ID)


@pytest.fixture
def tokens():
    """Token provider callable: every store resolves to tok-<instance id>."""
    return lambda instance_id: f'tok-{instance_id}'


@pytest.fixture
def run_pipeline(audit_log, remapper, tokens):
    """
    Build and run a pipeline against mocked adapters.

    Usage:
        result = run_pipeline(CouponPipeline, coupons=mock_adapter, options={'max': 5})
    """
    def runner(pipeline_class, options=None, **adapters):
        pipeline = pipeline_class(None, tokens, audit_log, remapper, **adapters)
        return pipeline.run(OPERATOR_ID, FROM_STORE, TO_STORE, options)
    return runner


def ok(new_id=None, data=None):
    """Adapter create result for a successful call."""
    result = {'ok': True}
    if new_id is not None:
        result['id'] = new_id
    if data is not None:
        result['data'] = data
    return result


def failed(error='boom', status=400):
    """Adapter create result for a failed call."""
    return {'ok': False, 'status': status, 'error': error}


def mock_adapter(**methods):
    """MagicMock adapter with the given method return values."""
    adapter = MagicMock()
    for name, value in methods.items():
        getattr(adapter, name).return_value = value
    return adapter
