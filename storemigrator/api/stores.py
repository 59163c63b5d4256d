"""
Connected stores API.

Stores are what an operator migrates from and to; each is addressed by its
platform instance id.
"""
import logging

from flask import Blueprint, g, jsonify, request
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..middleware.operator import require_operator
from ..models import MigrationStore
from ..utils.errors import ErrorCode, bad_request
from ..utils.exceptions import DuplicateError, NotFoundError

logger = logging.getLogger(__name__)

stores_bp = Blueprint('stores', __name__)


@stores_bp.route('', methods=['GET'])
@require_operator
def list_stores():
    """List the operator's connected stores."""
    stores = MigrationStore.query.filter_by(user_id=g.operator_id).order_by(
        MigrationStore.created_at.asc()
    ).all()
    return jsonify({
        'stores': [store.to_dict() for store in stores],
        'total': len(stores),
    })


@stores_bp.route('', methods=['POST'])
@require_operator
def register_store():
    """
    Register a store.

    Request body:
        instance_id: Platform instance id (required)
        instance_token: Instance/refresh token (optional)
        store_name: Display name (optional)
        store_logo: Logo URL (optional)
    """
    data = request.get_json(silent=True) or {}
    instance_id = str(data.get('instance_id') or '').strip()
    if not instance_id:
        return bad_request('instance_id is required', ErrorCode.MISSING_FIELD)

    store = MigrationStore(
        user_id=g.operator_id,
        instance_id=instance_id,
        instance_token=data.get('instance_token'),
        store_name=data.get('store_name'),
        store_logo=data.get('store_logo'),
    )
    db.session.add(store)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError('Store', instance_id)

    logger.info(f'Operator {g.operator_id} registered store {store.label}')
    return jsonify(store.to_dict()), 201


@stores_bp.route('/<int:store_id>', methods=['DELETE'])
@require_operator
def delete_store(store_id):
    """
    Remove a store. Ledger rows that reference it are kept.

    Raises:
        NotFoundError: the operator has no such store (404)
    """
    store = MigrationStore.query.filter_by(id=store_id, user_id=g.operator_id).first()
    if not store:
        raise NotFoundError('Store', store_id)

    db.session.delete(store)
    db.session.commit()
    return jsonify({'success': True, 'deleted': store_id})
