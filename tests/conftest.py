"""
Shared pytest fixtures for the Masjid Finance test suite.

All tests run against an in-memory SQLite database (TestingConfig).
A single app context is pushed for the whole session so that SQLAlchemy
objects remain attached throughout.  After each test, clean_db wipes all
rows and the point-in-time balance cache so tests are fully independent.
"""
from datetime import date
from decimal import Decimal

import pytest
from app import create_app
from extensions import db as _db
from services.balance_service import CACHE_EXTENSION_KEY
from services.transaction_service import TransactionService


# ---------------------------------------------------------------------------
# Application / database lifecycle
# ---------------------------------------------------------------------------

@pytest.fixture(scope='session')
def app():
    """Create a test Flask application with an in-memory SQLite database."""
    application = create_app('testing')
    ctx = application.app_context()
    ctx.push()
    _db.create_all()
    yield application
    _db.session.remove()
    _db.drop_all()
    ctx.pop()


@pytest.fixture(autouse=True)
def clean_db(app):
    """Wipe every table and the balance cache after each test."""
    yield
    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()
    _db.session.expunge_all()
    app.extensions[CACHE_EXTENSION_KEY].clear()


@pytest.fixture
def client(app):
    return app.test_client()


# ---------------------------------------------------------------------------
# Ledger helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def add_income(app):
    """Create an Income through the mutation service; returns the record."""
    def _add(amount, on=date(2024, 1, 10), **extra):
        data = dict(date=on, amount=Decimal(str(amount)), **extra)
        return TransactionService.create('income', data)['record']
    return _add


@pytest.fixture
def add_expense(app):
    """Create an Expense through the mutation service; returns the record."""
    def _add(amount, on=date(2024, 1, 15), **extra):
        data = dict(date=on, amount=Decimal(str(amount)), **extra)
        return TransactionService.create('expense', data)['record']
    return _add
