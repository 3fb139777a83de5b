"""
Transaction Service
Create, update and delete Income/Expense records.  Every mutation commits the
ledger write first and then synchronises caches and the stored balance
through BalanceService, so a successful call always leaves the Balance row
equal to the ledger total.
"""
import logging
from decimal import Decimal, InvalidOperation

from extensions import db
from models.expenses import Expense
from models.income import Income
from services.balance_service import BalanceService
from services.exceptions import InvalidTransactionError, TransactionNotFound
from utils.dates import to_date


logger = logging.getLogger(__name__)

TRANSACTION_MODELS = {
    'income': Income,
    'expense': Expense,
}

# Amounts are stored as Numeric(14, 2)
CENT = Decimal('0.01')
MAX_AMOUNT = Decimal('999999999999.99')

# Optional text fields accepted from request payloads, per kind
EDITABLE_FIELDS = {
    'income': ('description', 'category', 'source'),
    'expense': ('description', 'category', 'recipient'),
}


class TransactionService:

    @staticmethod
    def get_model(kind):
        try:
            return TRANSACTION_MODELS[kind]
        except KeyError:
            raise InvalidTransactionError(f"Unknown transaction kind: {kind!r}") from None

    @staticmethod
    def parse_amount(value):
        """Positive Decimal amount; rejects zero, negatives and non-numbers."""
        if value is None or isinstance(value, bool):
            raise InvalidTransactionError("amount is required")
        try:
            amount = Decimal(str(value))
            if amount.is_finite():
                amount = amount.quantize(CENT)
        except (InvalidOperation, ValueError):
            raise InvalidTransactionError(f"Invalid amount: {value!r}") from None
        if not amount.is_finite() or amount <= 0:
            raise InvalidTransactionError("amount must be greater than zero")
        if amount > MAX_AMOUNT:
            raise InvalidTransactionError(f"amount must not exceed {MAX_AMOUNT}")
        return amount

    @staticmethod
    def parse_date(value):
        try:
            return to_date(value)
        except ValueError as exc:
            raise InvalidTransactionError(str(exc)) from None

    @staticmethod
    def clean(kind, data, partial=False):
        """Validate a payload and return the column values to write.

        With partial=True only the keys present are checked (updates).
        """
        if not isinstance(data, dict):
            raise InvalidTransactionError("Request body must be a JSON object")

        values = {}
        if not partial or 'date' in data:
            values['date'] = TransactionService.parse_date(data.get('date'))
        if not partial or 'amount' in data:
            values['amount'] = TransactionService.parse_amount(data.get('amount'))
        for field in EDITABLE_FIELDS[kind]:
            if field in data:
                values[field] = data[field]
        return values

    @staticmethod
    def _apply_fields(kind, record, data, partial=False):
        for field, value in TransactionService.clean(kind, data, partial).items():
            setattr(record, field, value)

    @staticmethod
    def get(kind, transaction_id):
        """Fetch a transaction or raise TransactionNotFound."""
        model = TransactionService.get_model(kind)
        record = db.session.get(model, transaction_id)
        if record is None:
            raise TransactionNotFound(kind, transaction_id)
        return record

    @staticmethod
    def create(kind, data):
        """
        Record a new income or expense and resync the balance.

        Returns: dict with record and sync_result
        """
        model = TransactionService.get_model(kind)
        record = model()
        TransactionService._apply_fields(kind, record, data)

        db.session.add(record)
        db.session.commit()
        logger.info(f"Created {kind} {record.id} on {record.date}: {record.amount}")

        sync_result = BalanceService.sync_balance_after_transaction(record, 'create')
        return {'record': record, 'sync_result': sync_result}

    @staticmethod
    def update(kind, transaction_id, changes):
        """
        Apply *changes* to an existing transaction.  Caches are invalidated for
        the original date and, if it moved, the new one.

        Returns: dict with record, sync_result and affected_dates
        """
        record = TransactionService.get(kind, transaction_id)
        original = {'date': record.date, 'amount': record.amount}

        TransactionService._apply_fields(kind, record, changes, partial=True)
        db.session.commit()
        logger.info(f"Updated {kind} {record.id}: {original} -> date={record.date} amount={record.amount}")

        invalidation = BalanceService.smart_invalidate_cache(original, record)
        sync_result = BalanceService.sync_result(invalidation['balance'], 'update')
        return {
            'record': record,
            'sync_result': sync_result,
            'affected_dates': invalidation['affected_dates'],
        }

    @staticmethod
    def delete(kind, transaction_id):
        """
        Remove a transaction and resync.

        Returns: dict with deleted_record (serialised) and sync_result
        """
        record = TransactionService.get(kind, transaction_id)
        deleted = record.to_dict()

        db.session.delete(record)
        db.session.commit()
        logger.info(f"Deleted {kind} {transaction_id} dated {deleted['date']}")

        sync_result = BalanceService.sync_balance_after_transaction(deleted, 'delete')
        return {'deleted_record': deleted, 'sync_result': sync_result}
