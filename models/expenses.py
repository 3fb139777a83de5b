from extensions import db
from models.transactions import LedgerEntryMixin


class Expense(LedgerEntryMixin, db.Model):
    __tablename__ = 'expenses'

    kind = 'expense'

    recipient = db.Column(db.String(100))  # Vendor / payee

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_expenses_amount_positive'),
    )

    def to_dict(self):
        data = super().to_dict()
        data['recipient'] = self.recipient
        return data
