"""Exceptions raised by the finance services.

Store failures are not wrapped: SQLAlchemyError propagates unchanged so the
caller can decide how to surface it.
"""


class LedgerError(Exception):
    """Base exception for ledger operations"""
    pass


class TransactionNotFound(LedgerError):
    """Raised when an update/delete references an unknown transaction id"""

    def __init__(self, kind, transaction_id):
        self.kind = kind
        self.transaction_id = transaction_id
        super().__init__(f"{kind.capitalize()} {transaction_id} not found")


class InvalidTransactionError(LedgerError, ValueError):
    """Raised when a transaction payload fails validation"""
    pass


class InvalidPeriodError(LedgerError, ValueError):
    """Raised when a period type or month/week is out of range"""
    pass
