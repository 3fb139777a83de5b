"""
Report Service
Weekly, monthly and yearly finance summaries built from cached period
balances.  Weeks are counted within their month (days 1-7, 8-14, 15-21,
22-28 and 29-end) so a week never straddles two months.
"""
import calendar
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from models.expenses import Expense
from models.income import Income
from services.exceptions import InvalidPeriodError
from services.period_balance_service import PeriodBalanceService
from utils.dates import to_date, utcnow


class ReportService:

    @staticmethod
    def week_of_month(day):
        """1-5 index of *day*'s week within its month."""
        return (day.day - 1) // 7 + 1

    @staticmethod
    def get_week_range(year, month, week):
        """Inclusive (start, end) of week 1-5 of the given month."""
        _, last_day = calendar.monthrange(year, month)
        first = 7 * (week - 1) + 1
        if not 1 <= week <= 5 or first > last_day:
            raise InvalidPeriodError(f"{year}-{month:02d} has no week {week}")
        return date(year, month, first), date(year, month, min(first + 6, last_day))

    @staticmethod
    def get_month_range(year, month):
        start = date(year, month, 1)
        return start, start + relativedelta(months=1) - timedelta(days=1)

    @staticmethod
    def get_year_range(year):
        return date(year, 1, 1), date(year, 12, 31)

    @staticmethod
    def weeks_in_month(year, month):
        _, last_day = calendar.monthrange(year, month)
        return (last_day - 1) // 7 + 1

    @staticmethod
    def list_transactions(start_date, end_date):
        """Incomes and expenses within the range, oldest first."""
        incomes = Income.query.filter(
            Income.date >= start_date, Income.date <= end_date
        ).order_by(Income.date.asc(), Income.id.asc()).all()
        expenses = Expense.query.filter(
            Expense.date >= start_date, Expense.date <= end_date
        ).order_by(Expense.date.asc(), Expense.id.asc()).all()
        return {
            'incomes': [i.to_dict() for i in incomes],
            'expenses': [e.to_dict() for e in expenses],
        }

    @staticmethod
    def weekly_report(ref_date, force_refresh=False):
        """Summary and transactions for the week of the month containing *ref_date*."""
        ref_date = to_date(ref_date)
        week = ReportService.week_of_month(ref_date)
        start, end = ReportService.get_week_range(ref_date.year, ref_date.month, week)

        period = PeriodBalanceService.get_or_calculate(
            'weekly', start, end, ref_date.year, ref_date.month, week,
            force_recalculate=force_refresh,
        )
        report = {
            'period': 'weekly',
            'week': week,
            'summary': period.to_dict(),
            'generated_at': utcnow().isoformat(),
        }
        report.update(ReportService.list_transactions(start, end))
        return report

    @staticmethod
    def monthly_report(ref_date, force_refresh=False):
        """Month summary with its weekly breakdown."""
        ref_date = to_date(ref_date)
        year, month = ref_date.year, ref_date.month
        start, end = ReportService.get_month_range(year, month)

        period = PeriodBalanceService.get_or_calculate(
            'monthly', start, end, year, month, force_recalculate=force_refresh,
        )

        weeks = []
        for week in range(1, ReportService.weeks_in_month(year, month) + 1):
            week_start, week_end = ReportService.get_week_range(year, month, week)
            row = PeriodBalanceService.get_or_calculate(
                'weekly', week_start, week_end, year, month, week,
                force_recalculate=force_refresh,
            )
            weeks.append(row.to_dict())

        report = {
            'period': 'monthly',
            'summary': period.to_dict(),
            'weeks': weeks,
            'generated_at': utcnow().isoformat(),
        }
        report.update(ReportService.list_transactions(start, end))
        return report

    @staticmethod
    def yearly_report(start_date, end_date, force_refresh=False):
        """One summary per calendar year from start_date's year to end_date's."""
        start_date = to_date(start_date)
        end_date = to_date(end_date)
        if start_date > end_date:
            raise InvalidPeriodError(f"start {start_date} is after end {end_date}")

        years = []
        for year in range(start_date.year, end_date.year + 1):
            year_start, year_end = ReportService.get_year_range(year)
            row = PeriodBalanceService.get_or_calculate(
                'yearly', year_start, year_end, year, force_recalculate=force_refresh,
            )
            years.append(row.to_dict())

        total_income = sum(y['total_income'] for y in years)
        total_expense = sum(y['total_expense'] for y in years)

        return {
            'period': 'yearly',
            'years': years,
            'summary': {
                'start_date': years[0]['start_date'],
                'end_date': years[-1]['end_date'],
                'balance_start': years[0]['balance_start'],
                'total_income': total_income,
                'total_expense': total_expense,
                'net_change': total_income - total_expense,
                'balance_end': years[-1]['balance_end'],
            },
            'generated_at': utcnow().isoformat(),
        }
