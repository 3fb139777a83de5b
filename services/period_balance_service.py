"""
Period Balance Service
======================
Income/expense/balance summaries over an inclusive date range, with an
optional persisted cache (PeriodBalance) keyed by (period_type, year, month,
week).

  get_balance_in_period()  - compute a summary for [start_date, end_date]
  save_period_balance()    - compute and upsert the cached row for a period
  get_period_balance()     - read a cached row (None on miss or when stale)
  get_or_calculate()       - cached row when fresh, otherwise save a new one

A None from get_period_balance() means "recompute", never "zero".
"""
import logging

from flask import current_app

from extensions import db
from models.expenses import Expense
from models.income import Income
from models.period_balance import PeriodBalance, PERIOD_TYPES
from services.balance_service import BalanceService
from services.exceptions import InvalidPeriodError
from utils.dates import to_date, utcnow


logger = logging.getLogger(__name__)


class PeriodBalanceService:

    @staticmethod
    def validate_period_key(period_type, year, month=None, week=None):
        """Check the composite key; month/week must be present only where needed."""
        if period_type not in PERIOD_TYPES:
            raise InvalidPeriodError(f"Unknown period type: {period_type!r}")
        if year is None:
            raise InvalidPeriodError("year is required")

        if period_type == 'yearly':
            if month is not None or week is not None:
                raise InvalidPeriodError("yearly periods take no month or week")
            return

        if month is None or not 1 <= month <= 12:
            raise InvalidPeriodError(f"month must be 1-12 for {period_type} periods")

        if period_type == 'weekly':
            if week is None or not 1 <= week <= 5:
                raise InvalidPeriodError("week must be 1-5 for weekly periods")
        elif week is not None:
            raise InvalidPeriodError("monthly periods take no week")

    @staticmethod
    def get_balance_in_period(start_date, end_date, force_recalculate=False):
        """
        Summarise the ledger for the inclusive range [start_date, end_date].

        Args:
            start_date, end_date: range bounds (dates, datetimes or ISO strings)
            force_recalculate:    bypass the point-in-time cache for the
                                  opening balance

        Returns: dict with balance_start, total_income, total_expense,
                 balance_end, net_change, calculated_at, is_real_time
        """
        start_date = to_date(start_date)
        end_date = to_date(end_date)
        if start_date > end_date:
            raise InvalidPeriodError(f"start_date {start_date} is after end_date {end_date}")

        balance_start = BalanceService.get_balance_before_date(
            start_date, use_cache=not force_recalculate
        )
        total_income = BalanceService.sum_amount(
            Income, Income.date >= start_date, Income.date <= end_date
        )
        total_expense = BalanceService.sum_amount(
            Expense, Expense.date >= start_date, Expense.date <= end_date
        )
        net_change = total_income - total_expense

        return {
            'start_date': start_date,
            'end_date': end_date,
            'balance_start': balance_start,
            'total_income': total_income,
            'total_expense': total_expense,
            'balance_end': balance_start + net_change,
            'net_change': net_change,
            'calculated_at': utcnow(),
            'is_real_time': bool(force_recalculate),
        }

    @staticmethod
    def save_period_balance(period_type, start_date, end_date, year, month=None,
                            week=None, force_recalculate=False):
        """Compute the period and upsert its PeriodBalance row (whole-row overwrite)."""
        PeriodBalanceService.validate_period_key(period_type, year, month, week)

        data = PeriodBalanceService.get_balance_in_period(
            start_date, end_date, force_recalculate
        )
        now = utcnow()

        row = PeriodBalance.query.filter_by(
            period_type=period_type, year=year, month=month, week=week
        ).first()
        if row is None:
            row = PeriodBalance(
                period_type=period_type, year=year, month=month, week=week,
                created_at=now,
            )
            db.session.add(row)

        row.start_date = data['start_date']
        row.end_date = data['end_date']
        row.balance_start = data['balance_start']
        row.total_income = data['total_income']
        row.total_expense = data['total_expense']
        row.balance_end = data['balance_end']
        row.net_change = data['net_change']
        row.is_real_time = data['is_real_time']
        row.last_calculated_at = now
        row.updated_at = now
        db.session.commit()

        logger.info(
            f"Saved {period_type} period balance {data['start_date']} to {data['end_date']}: "
            f"end={data['balance_end']} real_time={data['is_real_time']}"
        )
        return row

    @staticmethod
    def get_period_balance(period_type, year, month=None, week=None, max_age=None):
        """
        Cached PeriodBalance row, or None if absent or older than *max_age*.

        Args:
            max_age: milliseconds; defaults to PERIOD_BALANCE_MAX_AGE
        """
        if max_age is None:
            max_age = current_app.config.get('PERIOD_BALANCE_MAX_AGE', 3600000)

        cached = PeriodBalance.query.filter_by(
            period_type=period_type, year=year, month=month, week=week
        ).first()

        if cached is None:
            logger.debug(f"No cached {period_type} period balance for {year}/{month}/{week}")
            return None

        age_ms = (utcnow() - cached.updated_at).total_seconds() * 1000
        if age_ms > max_age:
            logger.debug(f"Cached {period_type} period balance is stale ({age_ms / 1000:.0f}s old)")
            return None

        return cached

    @staticmethod
    def get_or_calculate(period_type, start_date, end_date, year, month=None, week=None,
                         force_recalculate=False, max_age=None):
        """
        Report helper: reuse a fresh cached row covering exactly this range,
        otherwise compute and save.  force_recalculate skips the cache
        regardless of age.
        """
        start_date = to_date(start_date)
        end_date = to_date(end_date)

        if not force_recalculate:
            cached = PeriodBalanceService.get_period_balance(
                period_type, year, month, week, max_age=max_age
            )
            if cached is not None and cached.start_date == start_date and cached.end_date == end_date:
                return cached

        return PeriodBalanceService.save_period_balance(
            period_type, start_date, end_date, year, month, week, force_recalculate
        )
