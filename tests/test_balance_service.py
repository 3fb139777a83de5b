"""
Integration tests for BalanceService.

Transactions are created through TransactionService (the add_income /
add_expense fixtures) unless a test needs to bypass it to simulate drift.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from extensions import db
from models.balances import Balance
from models.income import Income
from models.period_balance import PeriodBalance
from services.balance_cache import BalanceCache
from services.balance_service import BalanceService, CACHE_EXTENSION_KEY, affects_period


def _period_row(period_type, start, end, year, month=None, week=None):
    row = PeriodBalance(
        period_type=period_type, year=year, month=month, week=week,
        start_date=start, end_date=end,
        balance_start=0, total_income=0, total_expense=0, balance_end=0, net_change=0,
    )
    db.session.add(row)
    db.session.commit()
    return row


def _cached_ranges():
    return sorted((r.start_date, r.end_date) for r in PeriodBalance.query.all())


# ---------------------------------------------------------------------------
# affects_period
# ---------------------------------------------------------------------------

class TestAffectsPeriod:
    def test_period_entirely_before_change_is_unaffected(self):
        assert not affects_period(date(2024, 1, 1), date(2024, 1, 31), date(2024, 2, 1))

    def test_period_containing_change_is_affected(self):
        assert affects_period(date(2024, 1, 1), date(2024, 1, 31), date(2024, 1, 15))

    def test_period_ending_on_change_day_is_affected(self):
        assert affects_period(date(2024, 1, 1), date(2024, 1, 31), date(2024, 1, 31))

    def test_period_after_change_is_affected(self):
        # Its opening balance moves even though the change is outside the range
        assert affects_period(date(2024, 3, 1), date(2024, 3, 31), date(2024, 1, 5))


# ---------------------------------------------------------------------------
# compute_actual_balance
# ---------------------------------------------------------------------------

class TestComputeActualBalance:
    def test_empty_ledger_is_zero(self, app):
        assert BalanceService.compute_actual_balance() == 0

    def test_creates_balance_row_lazily(self, app):
        assert Balance.query.count() == 0
        BalanceService.compute_actual_balance()
        assert Balance.query.count() == 1

    def test_income_minus_expense(self, app, add_income, add_expense):
        add_income(100000)
        add_expense(30000)
        assert BalanceService.compute_actual_balance() == Decimal('70000')

    def test_keeps_a_single_balance_row(self, app, add_income):
        add_income(10)
        add_income(20)
        BalanceService.compute_actual_balance()
        assert Balance.query.count() == 1
        assert Balance.query.one().amount == Decimal('30')

    def test_store_errors_propagate(self, app, monkeypatch):
        from sqlalchemy.exc import OperationalError

        def _boom(*args, **kwargs):
            raise OperationalError('SELECT', {}, Exception('connection lost'))

        monkeypatch.setattr(BalanceService, 'sum_amount', staticmethod(_boom))
        with pytest.raises(OperationalError):
            BalanceService.compute_actual_balance()


# ---------------------------------------------------------------------------
# get_balance_before_date
# ---------------------------------------------------------------------------

class TestGetBalanceBeforeDate:
    def test_zero_when_nothing_precedes(self, app, add_income):
        add_income(500, on=date(2024, 5, 1))
        assert BalanceService.get_balance_before_date(date(2024, 5, 1)) == 0

    def test_strictly_before(self, app, add_income, add_expense):
        add_income(500, on=date(2024, 5, 1))
        add_expense(200, on=date(2024, 5, 2))
        assert BalanceService.get_balance_before_date(date(2024, 5, 2)) == Decimal('500')
        assert BalanceService.get_balance_before_date(date(2024, 5, 3)) == Decimal('300')

    def test_cached_and_uncached_agree(self, app, add_income, add_expense):
        add_income(1000, on=date(2024, 1, 1))
        add_expense(250, on=date(2024, 1, 20))
        d = date(2024, 2, 1)
        assert BalanceService.get_balance_before_date(d, True) == \
            BalanceService.get_balance_before_date(d, False)
        # Second cached read comes from the cache and still agrees
        assert BalanceService.get_balance_before_date(d, True) == \
            BalanceService.get_balance_before_date(d, False)

    def test_cache_keyed_by_day(self, app, add_income):
        add_income(1000, on=date(2024, 1, 1))
        BalanceService.get_balance_before_date(date(2024, 2, 1))
        assert 'balance_before_2024-02-01' in BalanceService.get_cache()

    def test_use_cache_false_does_not_populate(self, app, add_income):
        add_income(1000, on=date(2024, 1, 1))
        BalanceService.get_balance_before_date(date(2024, 2, 1), use_cache=False)
        assert len(BalanceService.get_cache()) == 0

    def test_mutation_through_service_drops_cached_values(self, app, add_income):
        add_income(1000, on=date(2024, 1, 1))
        d = date(2024, 2, 1)
        assert BalanceService.get_balance_before_date(d) == Decimal('1000')

        add_income(500, on=date(2024, 1, 15))  # backdated before d

        assert BalanceService.get_balance_before_date(d, True) == Decimal('1500')
        assert BalanceService.get_balance_before_date(d, False) == Decimal('1500')

    def test_cached_value_expires_after_ttl(self, app, monkeypatch):
        now = [0.0]
        cache = BalanceCache(ttl=3600, clock=lambda: now[0])
        monkeypatch.setitem(app.extensions, CACHE_EXTENSION_KEY, cache)

        d = date(2024, 2, 1)
        assert BalanceService.get_balance_before_date(d) == 0

        # Write straight to the ledger so nothing clears the cache
        db.session.add(Income(date=date(2024, 1, 5), amount=Decimal('75')))
        db.session.commit()
        assert BalanceService.get_balance_before_date(d) == 0

        now[0] += 3601
        assert BalanceService.get_balance_before_date(d) == Decimal('75')


# ---------------------------------------------------------------------------
# invalidate_cache
# ---------------------------------------------------------------------------

class TestInvalidateCache:
    def test_deletes_affected_rows_and_keeps_earlier_ones(self, app):
        _period_row('monthly', date(2024, 1, 1), date(2024, 1, 31), 2024, 1)
        _period_row('monthly', date(2024, 2, 1), date(2024, 2, 29), 2024, 2)
        _period_row('monthly', date(2024, 3, 1), date(2024, 3, 31), 2024, 3)
        _period_row('yearly', date(2024, 1, 1), date(2024, 12, 31), 2024)

        result = BalanceService.invalidate_cache(date(2024, 2, 10))

        assert result['success'] is True
        assert result['invalidated_count'] == 3
        assert _cached_ranges() == [(date(2024, 1, 1), date(2024, 1, 31))]

    def test_no_surviving_row_ends_on_or_after_change(self, app):
        start = date(2024, 1, 1)
        for offset in range(0, 60, 7):
            week_start = start + timedelta(days=offset)
            _period_row('weekly', week_start, week_start + timedelta(days=6),
                        2024, week_start.month, (week_start.day - 1) // 7 + 1)

        change = date(2024, 1, 24)
        BalanceService.invalidate_cache(change)

        for row in PeriodBalance.query.all():
            assert row.start_date < change and row.end_date < change

    def test_sql_clause_matches_predicate(self, app):
        rows = [
            _period_row('monthly', date(2024, m, 1), date(2024, m, 28), 2024, m)
            for m in range(1, 7)
        ]
        change = date(2024, 3, 28)
        expected = {r.id for r in rows if affects_period(r.start_date, r.end_date, change)}

        matched = PeriodBalance.query.filter(
            BalanceService.affected_periods_clause(change)
        ).all()

        assert {r.id for r in matched} == expected

    def test_recomputes_balance(self, app):
        db.session.add(Income(date=date(2024, 1, 5), amount=Decimal('40')))
        db.session.commit()

        result = BalanceService.invalidate_cache(date(2024, 1, 5))

        assert result['balance'] == Decimal('40')
        assert BalanceService.get_balance_record().amount == Decimal('40')

    def test_accepts_iso_strings(self, app):
        _period_row('monthly', date(2024, 2, 1), date(2024, 2, 29), 2024, 2)
        assert BalanceService.invalidate_cache('2024-02-10T08:30:00')['invalidated_count'] == 1


class TestSmartInvalidateCache:
    def test_same_date_invalidates_once(self, app, add_income):
        income = add_income(100, on=date(2024, 1, 10))
        result = BalanceService.smart_invalidate_cache(income, income)
        assert result['affected_dates'] == [date(2024, 1, 10)]

    def test_moved_date_invalidates_both(self, app):
        _period_row('monthly', date(2024, 1, 1), date(2024, 1, 31), 2024, 1)
        _period_row('monthly', date(2024, 3, 1), date(2024, 3, 31), 2024, 3)

        result = BalanceService.smart_invalidate_cache(
            {'date': date(2024, 3, 5)}, {'date': date(2024, 1, 5)}
        )

        assert result['affected_dates'] == [date(2024, 3, 5), date(2024, 1, 5)]
        assert PeriodBalance.query.count() == 0

    def test_without_new_record(self, app):
        result = BalanceService.smart_invalidate_cache({'date': '2024-04-01'})
        assert result['affected_dates'] == [date(2024, 4, 1)]


class TestBulkInvalidateCache:
    def test_deduplicates_calendar_days(self, app, monkeypatch):
        calls = []
        original = BalanceService.invalidate_cache

        def _tracking(d):
            calls.append(d)
            return original(d)

        monkeypatch.setattr(BalanceService, 'invalidate_cache', staticmethod(_tracking))

        result = BalanceService.bulk_invalidate_cache(
            ['2024-03-01', date(2024, 1, 1), '2024-03-01T22:00:00', date(2024, 1, 1)]
        )

        assert calls == [date(2024, 1, 1), date(2024, 3, 1)]
        assert result['dates'] == [date(2024, 1, 1), date(2024, 3, 1)]


# ---------------------------------------------------------------------------
# sync / repair / diagnostics
# ---------------------------------------------------------------------------

class TestSyncBalance:
    def test_clears_point_in_time_cache_only(self, app, add_income):
        add_income(100, on=date(2024, 1, 10))
        _period_row('monthly', date(2024, 1, 1), date(2024, 1, 31), 2024, 1)
        BalanceService.get_balance_before_date(date(2024, 2, 1))

        assert BalanceService.sync_balance() == Decimal('100')
        assert len(BalanceService.get_cache()) == 0
        assert PeriodBalance.query.count() == 1

    def test_can_keep_cache(self, app, add_income):
        add_income(100, on=date(2024, 1, 10))
        BalanceService.get_balance_before_date(date(2024, 2, 1))
        BalanceService.sync_balance(clear_cache=False)
        assert len(BalanceService.get_cache()) == 1

    def test_after_transaction_result_shape(self, app, add_income):
        income = add_income(250, on=date(2024, 6, 1))
        result = BalanceService.sync_balance_after_transaction(income, 'update')

        assert result['success'] is True
        assert result['balance'] == Decimal('250')
        assert result['operation'] == 'update'
        assert result['message'] == 'Balance updated after update'
        assert result['timestamp'] is not None


class TestValidateAndRepair:
    def test_consistent_after_compute(self, app, add_income):
        add_income(100000)
        report = BalanceService.validate_balance_consistency()
        assert report['is_consistent'] is True
        assert report['difference'] == 0
        assert report['needs_sync'] is False

    def test_detects_drift_without_fixing_it(self, app, add_income):
        add_income(100000)
        record = BalanceService.get_balance_record()
        record.amount = Decimal('5')
        db.session.commit()

        report = BalanceService.validate_balance_consistency()

        assert report['is_consistent'] is False
        assert report['needs_sync'] is True
        assert report['difference'] == Decimal('5') - Decimal('100000')
        assert BalanceService.get_balance_record().amount == Decimal('5')

    def test_missing_balance_row_counts_as_zero(self, app):
        db.session.add(Income(date=date(2024, 1, 1), amount=Decimal('10')))
        db.session.commit()
        report = BalanceService.validate_balance_consistency()
        assert report['balance_in_db'] == 0
        assert report['is_consistent'] is False

    def test_repair_fixes_drift_and_wipes_periods(self, app, add_income):
        add_income(100000)
        _period_row('monthly', date(2023, 1, 1), date(2023, 1, 31), 2023, 1)
        BalanceService.get_balance_record().amount = Decimal('1')
        db.session.commit()

        assert BalanceService.repair_balance() == Decimal('100000')
        assert PeriodBalance.query.count() == 0
        assert BalanceService.validate_balance_consistency()['is_consistent'] is True

    def test_repair_is_idempotent(self, app, add_income, add_expense):
        add_income(900)
        add_expense(100)
        first = BalanceService.repair_balance()
        _period_row('yearly', date(2024, 1, 1), date(2024, 12, 31), 2024)
        second = BalanceService.repair_balance()

        assert first == second == Decimal('800')
        assert PeriodBalance.query.count() == 0
        assert BalanceService.get_balance_record().amount == Decimal('800')


class TestHealthCheck:
    def test_healthy(self, app, add_income, add_expense):
        add_income(100)
        add_expense(40)
        _period_row('monthly', date(2023, 1, 1), date(2023, 1, 31), 2023, 1)

        report = BalanceService.health_check()

        assert report['status'] == 'healthy'
        assert report['total_incomes'] == 1
        assert report['total_expenses'] == 1
        assert report['cached_periods'] == 1
        assert report['consistency']['is_consistent'] is True

    def test_needs_repair(self, app, add_income):
        add_income(100)
        BalanceService.get_balance_record().amount = Decimal('99')
        db.session.commit()
        assert BalanceService.health_check()['status'] == 'needs_repair'
