from extensions import db
from models.transactions import LedgerEntryMixin


class Income(LedgerEntryMixin, db.Model):
    __tablename__ = 'incomes'

    kind = 'income'

    source = db.Column(db.String(100))  # Donor / box / transfer reference

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_incomes_amount_positive'),
    )

    def to_dict(self):
        data = super().to_dict()
        data['source'] = self.source
        return data
