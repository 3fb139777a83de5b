from extensions import db
from utils.dates import utcnow


PERIOD_TYPES = ('weekly', 'monthly', 'yearly')


class PeriodBalance(db.Model):
    """Cache table for weekly/monthly/yearly balance summaries.

    Rows are upserted whole by PeriodBalanceService and deleted in bulk by
    BalanceService.invalidate_cache(); a missing row means "recompute".
    """
    __tablename__ = 'period_balances'
    
    id = db.Column(db.Integer, primary_key=True)
    period_type = db.Column(db.String(10), nullable=False)  # weekly, monthly, yearly
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=True)  # 1-12, null for yearly
    week = db.Column(db.Integer, nullable=True)   # 1-5 within the month, null unless weekly
    
    # Inclusive range summarised by this row
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    
    balance_start = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    total_income = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    total_expense = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    balance_end = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    net_change = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    
    # Metadata
    is_real_time = db.Column(db.Boolean, nullable=False, default=False)
    last_calculated_at = db.Column(db.DateTime, default=utcnow)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)
    
    __table_args__ = (
        db.Index('idx_period_key', 'period_type', 'year', 'month', 'week'),
        db.Index('idx_period_range', 'start_date', 'end_date'),
        db.UniqueConstraint('period_type', 'year', 'month', 'week', name='unique_period'),
        db.CheckConstraint("period_type IN ('weekly', 'monthly', 'yearly')", name='ck_period_type'),
    )
    
    def to_dict(self):
        return {
            'period_type': self.period_type,
            'year': self.year,
            'month': self.month,
            'week': self.week,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'balance_start': float(self.balance_start),
            'total_income': float(self.total_income),
            'total_expense': float(self.total_expense),
            'balance_end': float(self.balance_end),
            'net_change': float(self.net_change),
            'is_real_time': bool(self.is_real_time),
            'last_calculated_at': self.last_calculated_at.isoformat() if self.last_calculated_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
    
    def __repr__(self):
        return (f'<PeriodBalance {self.period_type} {self.year}-{self.month}-w{self.week}: '
                f'{self.balance_start} -> {self.balance_end}>')
