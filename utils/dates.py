"""
Date helpers shared by models, services and routes.

Ledger entries are attributed to a calendar day (``db.Date``).  Callers may
hand us ``date``/``datetime`` objects or ISO-8601 strings; everything is
normalised to ``date`` before it reaches a query.
"""
from datetime import date, datetime, timezone


def utcnow():
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_date(value):
    """Normalise a date, datetime or ISO string to a ``date``.

    Raises ``ValueError`` for anything that cannot be interpreted.
    """
    if value is None:
        raise ValueError('date is required')
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError('date is required')
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
        try:
            return date.fromisoformat(text)
        except ValueError:
            raise ValueError(f'Invalid date: {value!r}') from None
    raise ValueError(f'Invalid date: {value!r}')


def parse_date_arg(value, default=None):
    """Parse an optional query-string date; ``default`` when absent."""
    if value is None or value == '':
        return default
    return to_date(value)


def parse_bool_arg(value, default=False):
    """Interpret 'true'/'1'/'yes' style flags from query strings or JSON."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')
