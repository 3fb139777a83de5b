"""Quick check of the period balance cache"""
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from app import create_app
from models.period_balance import PeriodBalance
from services.balance_service import BalanceService
from extensions import db

app = create_app()

with app.app_context():
    # Count total cache entries
    total_entries = PeriodBalance.query.count()
    print(f"Total cached periods: {total_entries}")

    counts = db.session.query(
        PeriodBalance.period_type, db.func.count(PeriodBalance.id)
    ).group_by(PeriodBalance.period_type).all()
    for period_type, count in counts:
        print(f"  {period_type}: {count}")

    # Show most recent entries
    entries = PeriodBalance.query.order_by(PeriodBalance.end_date.desc()).limit(5).all()
    if entries:
        print("\nLatest entries:")
    for entry in entries:
        print(f"  {entry.period_type:<8} {entry.start_date} to {entry.end_date}: "
              f"start={entry.balance_start:.2f} end={entry.balance_end:.2f} "
              f"(updated {entry.updated_at:%Y-%m-%d %H:%M})")

    health = BalanceService.health_check()
    print(f"\nBalance status: {health['status']}")
