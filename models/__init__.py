# Models package - Import all models for Flask-SQLAlchemy

from models.balances import Balance
from models.expenses import Expense
from models.income import Income
from models.period_balance import PeriodBalance

__all__ = [
    'Balance',
    'Expense',
    'Income',
    'PeriodBalance',
]
