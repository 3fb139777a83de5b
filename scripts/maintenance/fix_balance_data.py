"""
Fix Balance Data
Validates the stored balance against the ledger, repairs it (and wipes the
period cache) when they disagree, then validates again.

Back up the database before running this against production.
"""
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from app import create_app
from services.balance_service import BalanceService


def print_report(title, validation):
    print(title)
    print(f"   Consistent:     {'yes' if validation['is_consistent'] else 'NO'}")
    print(f"   Stored balance: {validation['balance_in_db']:,.2f}")
    print(f"   Ledger balance: {validation['actual_balance']:,.2f}")
    print(f"   Difference:     {abs(validation['difference']):,.2f}")


def main():
    app = create_app()

    with app.app_context():
        print("=" * 60)
        print("BALANCE DATA FIX")
        print("=" * 60)

        total_income, total_expense = BalanceService.calculate_ledger_totals()
        print(f"Total income:  {total_income:,.2f}")
        print(f"Total expense: {total_expense:,.2f}")
        print()

        before = BalanceService.validate_balance_consistency()
        print_report("Before:", before)
        print()

        if before['is_consistent']:
            print("Balance is already accurate, nothing to repair")
        else:
            corrected = BalanceService.repair_balance()
            print(f"Balance repaired to: {corrected:,.2f}")
        print()

        print_report("After:", BalanceService.validate_balance_consistency())


if __name__ == '__main__':
    main()
