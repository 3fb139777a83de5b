"""
Initialize database and create tables
Run this script once to set up your database; it also seeds the Balance row
from whatever ledger data is already present.
"""

from app import create_app
from extensions import db
from services.balance_service import BalanceService


def init_db(config_name='development'):
    """Initialize the database"""
    app = create_app(config_name)

    with app.app_context():
        print("Creating database tables...")
        db.create_all()
        print(f"Database location: {app.config['SQLALCHEMY_DATABASE_URI']}")

        print("\nTables created:")
        for table in db.metadata.sorted_tables:
            print(f"  - {table.name}")

        balance = BalanceService.compute_actual_balance()
        print(f"\nStarting balance: {balance:,.2f}")


if __name__ == '__main__':
    init_db()
