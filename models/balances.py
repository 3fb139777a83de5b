from extensions import db
from utils.dates import utcnow


class Balance(db.Model):
    """Cached current balance (single row).

    Written only by BalanceService; always reconstructable from the ledger.
    """
    __tablename__ = 'balances'

    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'amount': float(self.amount),
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<Balance {self.amount} @ {self.updated_at}>'
