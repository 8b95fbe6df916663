from flask import Blueprint, current_app, jsonify, request

import services
from auth import current_user, login_required
from models import Account, Category
from services import NotFound, ValidationError
from summary import build_summary

api_bp = Blueprint('api', __name__, url_prefix='/api')


@api_bp.errorhandler(ValidationError)
def _validation_error(exc):
    return jsonify({'error': 'Invalid input', 'fields': exc.errors}), 400


@api_bp.errorhandler(NotFound)
def _not_found(exc):
    return jsonify({'error': str(exc)}), 404


# ---------------------- API Helpers ----------------------
def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError({'_': 'Expected a JSON body.'})
    return data


def _ids_from_body():
    body = _json_body()
    ids = body.get('ids') if isinstance(body, dict) else None
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise ValidationError({'ids': 'Expected a list of ids.'})
    return ids


def _date_range():
    return services.resolve_date_range(
        request.args.get('from'),
        request.args.get('to'),
        current_app.config['SUMMARY_DEFAULT_DAYS'],
    )


def _register_named_resource(model, plural):
    """Accounts and categories share the same CRUD surface."""

    @login_required
    def list_view():
        return jsonify({'data': [r.to_dict() for r in services.list_records(model, current_user().id)]})

    @login_required
    def get_view(record_id):
        return jsonify({'data': services.get_record(model, current_user().id, record_id).to_dict()})

    @login_required
    def create_view():
        record = services.create_record(model, current_user().id, _json_body())
        return jsonify({'data': record.to_dict()}), 201

    @login_required
    def update_view(record_id):
        record = services.update_record(model, current_user().id, record_id, _json_body())
        return jsonify({'data': record.to_dict()})

    @login_required
    def delete_view(record_id):
        deleted = services.delete_records(model, current_user().id, [record_id])
        if not deleted:
            raise NotFound(f'{model.__name__} not found.')
        return jsonify({'data': {'id': deleted[0]}})

    @login_required
    def bulk_delete_view():
        deleted = services.delete_records(model, current_user().id, _ids_from_body())
        return jsonify({'data': [{'id': i} for i in deleted]})

    api_bp.add_url_rule(f'/{plural}', f'{plural}_list', list_view, methods=['GET'])
    api_bp.add_url_rule(f'/{plural}', f'{plural}_create', create_view, methods=['POST'])
    api_bp.add_url_rule(f'/{plural}/bulk-delete', f'{plural}_bulk_delete', bulk_delete_view, methods=['POST'])
    api_bp.add_url_rule(f'/{plural}/<record_id>', f'{plural}_get', get_view, methods=['GET'])
    api_bp.add_url_rule(f'/{plural}/<record_id>', f'{plural}_update', update_view, methods=['PATCH'])
    api_bp.add_url_rule(f'/{plural}/<record_id>', f'{plural}_delete', delete_view, methods=['DELETE'])


_register_named_resource(Account, 'accounts')
_register_named_resource(Category, 'categories')


# ---------------------- Transactions ----------------------
@api_bp.get('/transactions')
@login_required
def transactions_list():
    start, end = _date_range()
    txs = services.list_transactions(current_user().id, start, end, request.args.get('accountId'))
    return jsonify({'data': [t.to_dict(with_names=True) for t in txs]})


@api_bp.post('/transactions')
@login_required
def transactions_create():
    tx = services.create_transaction(current_user().id, _json_body())
    return jsonify({'data': tx.to_dict()}), 201


@api_bp.post('/transactions/bulk-create')
@login_required
def transactions_bulk_create():
    txs = services.bulk_create_transactions(current_user().id, _json_body())
    return jsonify({'data': [t.to_dict() for t in txs]}), 201


@api_bp.post('/transactions/bulk-delete')
@login_required
def transactions_bulk_delete():
    deleted = services.delete_transactions(current_user().id, _ids_from_body())
    return jsonify({'data': [{'id': i} for i in deleted]})


@api_bp.get('/transactions/<transaction_id>')
@login_required
def transactions_get(transaction_id):
    return jsonify({'data': services.get_transaction(current_user().id, transaction_id).to_dict()})


@api_bp.patch('/transactions/<transaction_id>')
@login_required
def transactions_update(transaction_id):
    tx = services.update_transaction(current_user().id, transaction_id, _json_body())
    return jsonify({'data': tx.to_dict()})


@api_bp.delete('/transactions/<transaction_id>')
@login_required
def transactions_delete(transaction_id):
    deleted = services.delete_transactions(current_user().id, [transaction_id])
    if not deleted:
        raise NotFound('Transaction not found.')
    return jsonify({'data': {'id': deleted[0]}})


# ---------------------- Summary ----------------------
@api_bp.get('/summary')
@login_required
def summary():
    start, end = _date_range()
    data = build_summary(current_user().id, start, end, request.args.get('accountId') or None)
    return jsonify({'data': data})
