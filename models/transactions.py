from extensions import db
from utils.dates import utcnow


class LedgerEntryMixin:
    """Columns shared by Income and Expense.

    ``date`` is the day the money is attributed to, not the creation time, so
    entries may be backdated.  ``amount`` is always positive; the direction
    comes from the model (``kind``).
    """

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.String(255))
    category = db.Column(db.String(100))  # Infaq Jumat, Zakat, Listrik, etc.

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    kind = None

    def to_dict(self):
        return {
            'id': self.id,
            'kind': self.kind,
            'date': self.date.isoformat() if self.date else None,
            'amount': float(self.amount) if self.amount is not None else None,
            'description': self.description,
            'category': self.category,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<{type(self).__name__} {self.date}: {self.description} - {self.amount}>'
