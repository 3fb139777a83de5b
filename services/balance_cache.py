"""
Point-in-time balance cache
===========================
Small in-process key/value store with a fixed time-to-live, used by
BalanceService.get_balance_before_date() to avoid re-aggregating the ledger
for every report row.

Expiry is checked lazily on read against a monotonic clock (injectable for
tests); nothing runs in the background.  Values for a given key are
deterministic for a given ledger state, so concurrent writers simply
overwrite each other.
"""
import time


class BalanceCache:

    def __init__(self, ttl=3600, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries = {}

    def get(self, key):
        """Return the cached value, or None when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key, value, ttl=None):
        lifetime = self.ttl if ttl is None else ttl
        self._entries[key] = (value, self._clock() + lifetime)

    def clear(self):
        self._entries.clear()

    def __contains__(self, key):
        return self.get(key) is not None

    def __len__(self):
        now = self._clock()
        return sum(1 for _, expires_at in self._entries.values() if now < expires_at)
