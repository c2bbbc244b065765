# mint_relay/pending.py

import threading
import time
from dataclasses import dataclass, field


@dataclass
class PendingMint:
    """Minting parameters waiting for the payment webhook."""
    user_address: str
    public_cid: str
    private_cid: str
    created_at: float = field(default_factory=time.time)


class PendingMintStore:
    """
    In-memory map of payment token -> PendingMint.
    All access goes through a lock; expired records are dropped on access.
    """

    def __init__(self, ttl_seconds=86400, clock=time.time):
        self._ttl = ttl_seconds
        self._clock = clock
        self._records = {}
        self._lock = threading.Lock()

    def _evict_expired(self):
        # Caller must hold the lock
        if not self._ttl:
            return
        cutoff = self._clock() - self._ttl
        expired = [token for token, rec in self._records.items() if rec.created_at < cutoff]
        for token in expired:
            del self._records[token]
        if expired:
            print(f"Evicted {len(expired)} expired pending mint(s).")

    def add(self, token, user_address, public_cid, private_cid):
        """Records the minting parameters for a freshly issued payment token."""
        record = PendingMint(user_address, public_cid, private_cid, created_at=self._clock())
        with self._lock:
            self._evict_expired()
            self._records[token] = record
        return record

    def restore(self, token, record):
        """Puts back a record claimed with pop(), keeping its original age."""
        with self._lock:
            self._records.setdefault(token, record)

    def get(self, token):
        with self._lock:
            self._evict_expired()
            return self._records.get(token)

    def pop(self, token):
        """Removes and returns the record for token (None if unknown). Only one caller can claim it."""
        with self._lock:
            self._evict_expired()
            return self._records.pop(token, None)

    def __contains__(self, token):
        return self.get(token) is not None

    def __len__(self):
        with self._lock:
            self._evict_expired()
            return len(self._records)
