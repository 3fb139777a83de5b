from datetime import date
from decimal import Decimal

from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from . import finance_bp
from extensions import db, limiter
from services.balance_service import BalanceService
from services.exceptions import InvalidPeriodError, InvalidTransactionError, TransactionNotFound
from services.report_service import ReportService
from services.transaction_service import TransactionService
from utils.dates import parse_bool_arg, parse_date_arg, to_date, utcnow


COLLECTION_KINDS = {
    'incomes': 'income',
    'expenses': 'expense',
}


def _admin_limit():
    return current_app.config.get('ADMIN_RATELIMIT', '10 per minute')


def _jsonable(value):
    """Convert Decimals/dates inside service results for jsonify."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _sync_info(sync_result, **extra):
    info = {
        'operation': sync_result['operation'],
        'timestamp': sync_result['timestamp'],
    }
    info.update(extra)
    return _jsonable(info)


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

@finance_bp.errorhandler(TransactionNotFound)
def handle_not_found(error):
    return jsonify({'message': str(error)}), 404


@finance_bp.errorhandler(InvalidTransactionError)
@finance_bp.errorhandler(InvalidPeriodError)
def handle_invalid(error):
    db.session.rollback()
    return jsonify({'message': str(error)}), 400


@finance_bp.errorhandler(SQLAlchemyError)
def handle_store_failure(error):
    db.session.rollback()
    current_app.logger.exception(f'Finance store failure: {error}')
    return jsonify({'message': 'Database error', 'error': str(error)}), 500


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

@finance_bp.route('/<any(incomes, expenses):collection>', methods=['POST'])
def create_transaction(collection):
    """Record an income or expense"""
    kind = COLLECTION_KINDS[collection]
    result = TransactionService.create(kind, request.get_json(silent=True) or {})
    sync = result['sync_result']

    return jsonify({
        'message': f'{kind.capitalize()} created and balance updated',
        'data': result['record'].to_dict(),
        'current_balance': float(sync['balance']),
        'sync_info': _sync_info(sync),
    }), 201


@finance_bp.route('/<any(incomes, expenses):collection>/<int:id>', methods=['GET'])
def get_transaction(collection, id):
    record = TransactionService.get(COLLECTION_KINDS[collection], id)
    return jsonify({'data': record.to_dict()})


@finance_bp.route('/<any(incomes, expenses):collection>/<int:id>', methods=['PUT'])
def update_transaction(collection, id):
    """Edit an income or expense"""
    kind = COLLECTION_KINDS[collection]
    result = TransactionService.update(kind, id, request.get_json(silent=True) or {})
    sync = result['sync_result']

    return jsonify({
        'message': f'{kind.capitalize()} updated and balance synchronised',
        'data': result['record'].to_dict(),
        'current_balance': float(sync['balance']),
        'sync_info': _sync_info(sync, affected_dates=result['affected_dates']),
    })


@finance_bp.route('/<any(incomes, expenses):collection>/<int:id>', methods=['DELETE'])
def delete_transaction(collection, id):
    """Delete an income or expense"""
    kind = COLLECTION_KINDS[collection]
    result = TransactionService.delete(kind, id)
    sync = result['sync_result']
    deleted = result['deleted_record']

    return jsonify({
        'message': f'{kind.capitalize()} deleted and balance synchronised',
        'deleted_data': deleted,
        'current_balance': float(sync['balance']),
        'sync_info': _sync_info(sync, affected_date=deleted['date']),
    })


# ---------------------------------------------------------------------------
# Balance
# ---------------------------------------------------------------------------

@finance_bp.route('/balance', methods=['GET'])
def get_balance():
    balance = BalanceService.get_current_balance()
    return jsonify({
        'balance': float(balance),
        'timestamp': utcnow().isoformat(),
        'is_real_time': True,
    })


@finance_bp.route('/balance/sync', methods=['POST'])
@limiter.limit(_admin_limit)
def sync_balance():
    """Manual resync of the stored balance"""
    payload = request.get_json(silent=True) or {}
    clear_cache = parse_bool_arg(payload.get('clear_cache'), default=True)

    balance = BalanceService.sync_balance(clear_cache)
    current_app.logger.info(f'Manual balance sync: {balance} (cache cleared: {clear_cache})')

    return jsonify({
        'message': 'Balance synchronised',
        'balance': float(balance),
        'cache_cleared': clear_cache,
    })


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def _report_meta(period, force_refresh):
    return {'period': period, 'is_real_time': force_refresh}


@finance_bp.route('/report/weekly', methods=['GET'])
def weekly_report():
    try:
        ref_date = parse_date_arg(request.args.get('date'), default=date.today())
    except ValueError as e:
        return jsonify({'message': str(e)}), 400
    force_refresh = parse_bool_arg(request.args.get('force_refresh'))

    data = ReportService.weekly_report(ref_date, force_refresh)
    return jsonify({'data': data, 'meta': _report_meta('weekly', force_refresh)})


@finance_bp.route('/report/monthly', methods=['GET'])
def monthly_report():
    try:
        ref_date = parse_date_arg(request.args.get('date'), default=date.today())
    except ValueError as e:
        return jsonify({'message': str(e)}), 400
    force_refresh = parse_bool_arg(request.args.get('force_refresh'))

    data = ReportService.monthly_report(ref_date, force_refresh)
    return jsonify({'data': data, 'meta': _report_meta('monthly', force_refresh)})


@finance_bp.route('/report/yearly', methods=['GET'])
def yearly_report():
    this_year = date.today().year
    try:
        start = parse_date_arg(request.args.get('start'), default=date(this_year, 1, 1))
        end = parse_date_arg(request.args.get('end'), default=date(this_year, 12, 31))
    except ValueError as e:
        return jsonify({'message': str(e)}), 400
    force_refresh = parse_bool_arg(request.args.get('force_refresh'))

    data = ReportService.yearly_report(start, end, force_refresh)
    return jsonify({'data': data, 'meta': _report_meta('yearly', force_refresh)})


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

@finance_bp.route('/health', methods=['GET'])
def health():
    try:
        report = BalanceService.health_check()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception('Balance health check failed')
        return jsonify({'status': 'error', 'error': str(e)}), 500

    status_code = 200 if report['status'] == 'healthy' else 500
    return jsonify(_jsonable(report)), status_code


@finance_bp.route('/cache/clear', methods=['POST'])
@limiter.limit(_admin_limit)
def clear_cache():
    """type=all repairs everything; type=date invalidates from one day"""
    payload = request.get_json(silent=True) or {}
    clear_type = payload.get('type', 'all')

    if clear_type == 'all':
        balance = BalanceService.repair_balance()
        return jsonify({
            'message': 'All caches cleared and balance repaired',
            'balance': float(balance),
        })

    if clear_type == 'date' and payload.get('date'):
        try:
            change_date = to_date(payload['date'])
        except ValueError as e:
            return jsonify({'message': str(e)}), 400
        result = BalanceService.invalidate_cache(change_date)
        return jsonify({
            'message': f'Cache cleared from {change_date.isoformat()}',
            'invalidated_count': result['invalidated_count'],
            'balance': float(result['balance']),
        })

    return jsonify({'message': 'Invalid parameters'}), 400
