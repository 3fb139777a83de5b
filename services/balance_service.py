"""
Balance Service
===============
Keeps the cached current balance (the single Balance row) in step with the
Income/Expense ledger and manages invalidation of the PeriodBalance cache.

Consistency model
-----------------
The ledger is the only source of truth.  The current balance is never
adjusted by deltas: every sync recomputes

    balance = SUM(incomes.amount) - SUM(expenses.amount)

over the whole ledger and overwrites the Balance row.  That costs one pair of
aggregate queries per mutation and rules out double counting or missed
updates.

Two derived caches sit on top of the ledger:

  PeriodBalance rows   - persisted weekly/monthly/yearly summaries.  Any change
                         on or before a period's end date shifts that period,
                         so invalidate_cache() deletes every row that ends on
                         or after the change date.
  point-in-time cache  - in-process BalanceCache of "balance before day X",
                         used only for report generation.  Entries expire
                         after BALANCE_CACHE_TTL seconds and the whole cache is
                         dropped whenever the ledger changes.

Primary entry points
--------------------
  compute_actual_balance()          - full recompute, writes the Balance row
  get_balance_before_date()         - balance strictly before a day
  invalidate_cache()                - drop affected periods, then recompute
  smart_invalidate_cache()          - invalidate old (and new) dates of an edit
  sync_balance_after_transaction()  - uniform post-mutation sync result
  validate_balance_consistency()    - compare stored vs recomputed balance
  repair_balance()                  - wipe all caches and recompute
  health_check()                    - consistency plus row counts
"""
import logging
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_

from extensions import db
from models.balances import Balance
from models.expenses import Expense
from models.income import Income
from models.period_balance import PeriodBalance
from services.balance_cache import BalanceCache
from utils.dates import to_date, utcnow


logger = logging.getLogger(__name__)

CACHE_EXTENSION_KEY = 'balance_cache'


def init_balance_cache(app):
    """Attach a fresh point-in-time cache to *app*."""
    cache = BalanceCache(ttl=app.config.get('BALANCE_CACHE_TTL', 3600))
    app.extensions[CACHE_EXTENSION_KEY] = cache
    return cache


def affects_period(period_start, period_end, change_date):
    """True if a ledger change on *change_date* can alter a cached period.

    A period's figures depend on every transaction up to its end date, so any
    period starting or ending on/after the change must be recomputed.
    """
    return period_start >= change_date or period_end >= change_date


def _to_decimal(value):
    if value is None:
        return Decimal('0')
    return Decimal(str(value))


class BalanceService:
    """
    Owner of the Balance row and the point-in-time balance cache.

    Nothing else writes Balance; transaction mutations go through
    TransactionService, which calls back into this class.
    """

    # ------------------------------------------------------------------
    # Aggregation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def get_cache():
        """Return the app's BalanceCache, creating it on first use."""
        cache = current_app.extensions.get(CACHE_EXTENSION_KEY)
        if cache is None:
            cache = init_balance_cache(current_app)
        return cache

    @staticmethod
    def sum_amount(model, *criteria):
        """SUM(amount) for *model* under optional filter criteria, as Decimal."""
        query = db.session.query(func.sum(model.amount))
        if criteria:
            query = query.filter(*criteria)
        return _to_decimal(query.scalar())

    @staticmethod
    def calculate_ledger_totals():
        """Return (total_income, total_expense) over the whole ledger.

        Read-only: unlike compute_actual_balance() this never touches the
        Balance row, so it can be used to detect drift.
        """
        return BalanceService.sum_amount(Income), BalanceService.sum_amount(Expense)

    # ------------------------------------------------------------------
    # Current balance
    # ------------------------------------------------------------------

    @staticmethod
    def get_balance_record():
        return Balance.query.order_by(Balance.id.asc()).first()

    @staticmethod
    def _update_balance_record(amount):
        """Upsert the single Balance row."""
        balance = BalanceService.get_balance_record()
        if balance is None:
            balance = Balance(amount=amount, updated_at=utcnow())
            db.session.add(balance)
        else:
            balance.amount = amount
            balance.updated_at = utcnow()
        db.session.commit()
        return balance

    @staticmethod
    def compute_actual_balance():
        """
        Recalculate the balance from every Income and Expense and store it.

        Always authoritative; database errors propagate to the caller.

        Returns: Decimal balance (income minus expense)
        """
        total_income, total_expense = BalanceService.calculate_ledger_totals()
        actual_balance = total_income - total_expense

        BalanceService._update_balance_record(actual_balance)

        logger.info(
            f"Calculated balance: {actual_balance} "
            f"(income={total_income}, expense={total_expense})"
        )
        return actual_balance

    @staticmethod
    def get_current_balance():
        """Current balance, always freshly recomputed."""
        return BalanceService.compute_actual_balance()

    # ------------------------------------------------------------------
    # Point-in-time balance
    # ------------------------------------------------------------------

    @staticmethod
    def get_balance_before_date(before_date, use_cache=True):
        """
        Balance from all transactions strictly before *before_date*.

        Args:
            before_date: date (or datetime / ISO string); only the day counts
            use_cache:   consult and populate the in-process cache

        Returns: Decimal, 0 when nothing precedes the date
        """
        before_date = to_date(before_date)
        cache_key = f"balance_before_{before_date.isoformat()}"
        cache = BalanceService.get_cache()

        if use_cache:
            cached = cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Using cached balance before {before_date}: {cached}")
                return cached

        incomes = BalanceService.sum_amount(Income, Income.date < before_date)
        expenses = BalanceService.sum_amount(Expense, Expense.date < before_date)
        balance = incomes - expenses

        if use_cache:
            cache.set(cache_key, balance)

        return balance

    # ------------------------------------------------------------------
    # Cache invalidation
    # ------------------------------------------------------------------

    @staticmethod
    def affected_periods_clause(change_date):
        """SQL form of affects_period() for PeriodBalance queries."""
        return or_(
            PeriodBalance.start_date >= change_date,
            PeriodBalance.end_date >= change_date,
        )

    @staticmethod
    def invalidate_cache(transaction_date):
        """
        Delete every cached period a change on *transaction_date* could affect,
        drop the point-in-time cache, then recompute the current balance.

        Returns: dict with success, invalidated_count, balance, message
        """
        change_date = to_date(transaction_date)

        deleted = PeriodBalance.query.filter(
            BalanceService.affected_periods_clause(change_date)
        ).delete(synchronize_session=False)
        db.session.commit()

        BalanceService.get_cache().clear()
        logger.info(f"Invalidated {deleted} cached periods from {change_date}")

        balance = BalanceService.compute_actual_balance()

        return {
            'success': True,
            'invalidated_count': deleted,
            'balance': balance,
            'message': 'Cache invalidated successfully',
        }

    @staticmethod
    def _date_of(record):
        if record is None:
            return None
        value = record.get('date') if isinstance(record, dict) else getattr(record, 'date', None)
        return to_date(value) if value is not None else None

    @staticmethod
    def smart_invalidate_cache(old_record, new_record=None):
        """
        Invalidate for an edited transaction: its old date and, if the edit
        moved it, the new date as well.

        Returns: dict with success, affected_dates, balance
        """
        dates = []
        old_date = BalanceService._date_of(old_record)
        new_date = BalanceService._date_of(new_record)
        if old_date is not None:
            dates.append(old_date)
        if new_date is not None and new_date not in dates:
            dates.append(new_date)

        balance = None
        for change_date in dates:
            balance = BalanceService.invalidate_cache(change_date)['balance']

        if balance is None:
            balance = BalanceService.compute_actual_balance()

        return {
            'success': True,
            'affected_dates': dates,
            'balance': balance,
            'message': 'Smart cache invalidation completed',
        }

    @staticmethod
    def bulk_invalidate_cache(transaction_dates):
        """Invalidate once per distinct calendar day in *transaction_dates*."""
        unique_dates = sorted({to_date(d) for d in transaction_dates})
        logger.info(f"Bulk invalidating cache for {len(unique_dates)} unique dates")

        invalidated = 0
        for change_date in unique_dates:
            invalidated += BalanceService.invalidate_cache(change_date)['invalidated_count']

        return {
            'success': True,
            'dates': unique_dates,
            'invalidated_count': invalidated,
        }

    # ------------------------------------------------------------------
    # Sync / repair
    # ------------------------------------------------------------------

    @staticmethod
    def sync_balance(clear_cache=True):
        """Administrative resync; PeriodBalance rows are left alone."""
        if clear_cache:
            BalanceService.get_cache().clear()
            logger.info("Cleared point-in-time balance cache")

        balance = BalanceService.compute_actual_balance()
        logger.info(f"Balance synced: {balance}")
        return balance

    @staticmethod
    def sync_balance_after_transaction(transaction, operation='create'):
        """
        Invalidate caches for *transaction*'s date and recompute the balance.

        Returns the result shape the finance routes put in their responses:
        {success, balance, operation, message, timestamp}
        """
        change_date = BalanceService._date_of(transaction)
        if change_date is not None:
            balance = BalanceService.invalidate_cache(change_date)['balance']
        else:
            balance = BalanceService.compute_actual_balance()

        logger.info(f"Balance synced after {operation}: {balance}")
        return BalanceService.sync_result(balance, operation)

    @staticmethod
    def sync_result(balance, operation):
        return {
            'success': True,
            'balance': balance,
            'operation': operation,
            'message': f'Balance updated after {operation}',
            'timestamp': utcnow(),
        }

    @staticmethod
    def repair_balance():
        """Wipe every cached period and the point-in-time cache, then recompute."""
        logger.warning("Starting balance repair")

        BalanceService.get_cache().clear()
        PeriodBalance.query.delete(synchronize_session=False)
        db.session.commit()

        balance = BalanceService.compute_actual_balance()
        logger.warning(f"Balance repaired to: {balance}")
        return balance

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    @staticmethod
    def validate_balance_consistency():
        """
        Compare the stored balance with a fresh recomputation of the ledger.

        Does not write anything; run repair_balance() when needs_sync is True.
        """
        record = BalanceService.get_balance_record()
        balance_in_db = _to_decimal(record.amount) if record else Decimal('0')

        total_income, total_expense = BalanceService.calculate_ledger_totals()
        actual_balance = total_income - total_expense

        difference = balance_in_db - actual_balance
        tolerance = current_app.config.get('BALANCE_TOLERANCE', Decimal('0.01'))
        is_consistent = abs(difference) < tolerance

        if not is_consistent:
            logger.warning(
                f"Balance drift detected: stored={balance_in_db} actual={actual_balance}"
            )

        return {
            'is_consistent': is_consistent,
            'balance_in_db': balance_in_db,
            'actual_balance': actual_balance,
            'difference': difference,
            'last_updated': record.updated_at if record else None,
            'needs_sync': not is_consistent,
        }

    @staticmethod
    def health_check():
        consistency = BalanceService.validate_balance_consistency()

        return {
            'status': 'healthy' if consistency['is_consistent'] else 'needs_repair',
            'consistency': consistency,
            'total_incomes': Income.query.count(),
            'total_expenses': Expense.query.count(),
            'cached_periods': PeriodBalance.query.count(),
            'timestamp': utcnow(),
        }
