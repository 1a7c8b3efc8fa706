"""
Fingerprinted, expiry-aware cache of exchanged OBO access tokens.
"""

import hashlib
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

# Tokens are treated as expired this many seconds before their real expiry.
EXPIRY_SKEW_SECONDS = 60


def fingerprint(assertion: str, resource: str) -> str:
    """SHA-256 digest of ``assertion|resource``; the raw assertion is never a key."""
    return hashlib.sha256(f"{assertion}|{resource}".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CachedToken:
    fingerprint: str
    access_token: str
    expires_at: float

    def is_usable(self, now: float) -> bool:
        return now < self.expires_at - EXPIRY_SKEW_SECONDS


class TokenCache:
    """In-process mapping of fingerprint to exchanged token.

    Entries are overwritten on every store and only removed by ``sweep``.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._entries: Dict[str, CachedToken] = {}

    def get(self, key: str) -> Optional[CachedToken]:
        """Return the entry for ``key`` if it is still usable."""
        entry = self._entries.get(key)
        if entry is not None and entry.is_usable(self.clock()):
            return entry
        return None

    def put(self, key: str, access_token: str, expires_at: float) -> CachedToken:
        entry = CachedToken(fingerprint=key, access_token=access_token, expires_at=expires_at)
        self._entries[key] = entry
        return entry

    def sweep(self) -> int:
        """Drop entries that are no longer usable and return how many went."""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_usable(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
