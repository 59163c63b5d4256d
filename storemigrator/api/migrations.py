"""
Migration API endpoints.

Runs the orchestrator for a store pair and exposes the ledger and the
operator-visible log.
"""
import logging

from flask import Blueprint, current_app, g, jsonify, request

from ..middleware.operator import require_operator
from ..models import LEDGER_MODELS, LEDGER_STATUSES, MigrationLog
from ..services.ledger_service import MigrationLedger
from ..services.orchestrator import DEPENDENCY_ORDER, MigrationOrchestrator, PIPELINE_REGISTRY
from ..utils.errors import ErrorCode, bad_request
from ..utils.exceptions import UnknownEntityTypeError, ValidationError

logger = logging.getLogger(__name__)

migrations_bp = Blueprint('migrations', __name__)

MAX_LOG_LIMIT = 500


def parse_options(raw) -> dict:
    """
    Validate the run options.

    Raises:
        ValidationError: If an option has the wrong type
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError('options must be an object', 'options')

    options = dict(raw)
    if options.get('max') is not None:
        try:
            options['max'] = int(options['max'])
        except (TypeError, ValueError):
            raise ValidationError('options.max must be an integer', 'options.max')
        if options['max'] < 1:
            raise ValidationError('options.max must be positive', 'options.max')
    options['dry_run'] = bool(options.get('dry_run'))
    return options


def get_orchestrator() -> MigrationOrchestrator:
    return MigrationOrchestrator.from_config(current_app.config)


def _run(entity_types, data: dict):
    from_store = str(data.get('from_store') or '').strip()
    to_store = str(data.get('to_store') or '').strip()
    if not from_store or not to_store:
        return bad_request('from_store and to_store are required', ErrorCode.MISSING_FIELD)

    options = parse_options(data.get('options'))
    summary = get_orchestrator().run(g.operator_id, from_store, to_store, entity_types, options)

    return jsonify(summary.to_dict())


@migrations_bp.route('/entities', methods=['GET'])
def list_entities():
    """Entity types in the order a full run migrates them."""
    return jsonify({'entities': list(DEPENDENCY_ORDER)})


@migrations_bp.route('/run', methods=['POST'])
@require_operator
def run_migration():
    """
    Run a migration for a store pair.

    Request body:
        from_store: Source store instance id (required)
        to_store: Destination store instance id (required)
        entities: Entity types to run (default: all)
        options: {max, dry_run}

    Returns:
        Summary with message, per-entity results and errors
    """
    data = request.get_json(silent=True) or {}
    entities = data.get('entities')
    if entities is not None and not isinstance(entities, list):
        raise ValidationError('entities must be a list', 'entities')
    return _run(entities, data)


@migrations_bp.route('/<entity_type>', methods=['POST'])
@require_operator
def run_entity(entity_type):
    """Run a single entity type for a store pair."""
    data = request.get_json(silent=True) or {}
    return _run([entity_type], data)


@migrations_bp.route('/<entity_type>/ledger', methods=['GET'])
@require_operator
def get_ledger(entity_type):
    """
    Ledger rows for one entity type and store pair.

    Query params:
        from_store: Source store instance id (required)
        to_store: Destination store instance id (required)
        status: Filter by status (optional)
        limit: Max rows (default 500)
    """
    model = LEDGER_MODELS.get(entity_type)
    if model is None or entity_type not in PIPELINE_REGISTRY:
        raise UnknownEntityTypeError(entity_type)

    from_store = request.args.get('from_store', '').strip()
    to_store = request.args.get('to_store', '').strip()
    if not from_store or not to_store:
        return bad_request('from_store and to_store are required', ErrorCode.MISSING_FIELD)

    status = request.args.get('status')
    if status and status not in LEDGER_STATUSES:
        raise ValidationError(f'Invalid status: {status}', 'status')

    limit = min(request.args.get('limit', MAX_LOG_LIMIT, type=int), MAX_LOG_LIMIT)

    ledger = MigrationLedger(model, g.operator_id, from_store, to_store)
    return jsonify({
        'entity_type': entity_type,
        'counts': ledger.counts(),
        'entries': [entry.to_dict() for entry in ledger.entries(status=status, limit=limit)],
    })


@migrations_bp.route('/logs', methods=['GET'])
@require_operator
def get_logs():
    """Most recent migration log entries for the operator."""
    limit = min(request.args.get('limit', 100, type=int), MAX_LOG_LIMIT)
    query = MigrationLog.query.filter_by(user_id=g.operator_id)

    level = request.args.get('level')
    if level:
        query = query.filter_by(status=level)

    logs = query.order_by(MigrationLog.created_at.desc(), MigrationLog.id.desc()).limit(limit).all()
    return jsonify({'logs': [entry.to_dict() for entry in logs]})
