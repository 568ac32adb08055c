"""
Snapshot change detection.
"""

import time
from typing import Callable, Optional


def fingerprint(text: str) -> str:
    """Fast 32-bit string hash (h * 31 + c), as an unsigned decimal string."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return str(h)


class ChangeDetector:
    """
    Tracks the fingerprint of the last uploaded snapshot.

    A snapshot is due for upload only if its fingerprint differs from the
    last accepted one. A failed upload holds back retries of that same
    fingerprint for retry_after seconds.
    """

    def __init__(self, retry_after: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.retry_after = retry_after
        self.clock = clock
        self.last_hash: Optional[str] = None
        self._failed_hash: Optional[str] = None
        self._failed_at = 0.0

    def is_due(self, snapshot_hash: str) -> bool:
        if snapshot_hash == self.last_hash:
            return False
        if snapshot_hash == self._failed_hash and self.clock() - self._failed_at < self.retry_after:
            return False
        return True

    def accept(self, snapshot_hash: str):
        """Record a successful upload."""
        self.last_hash = snapshot_hash
        self._failed_hash = None

    def reject(self, snapshot_hash: str):
        """Record a failed upload."""
        self._failed_hash = snapshot_hash
        self._failed_at = self.clock()

    def reset(self):
        """Forget everything (new conversation)."""
        self.last_hash = None
        self._failed_hash = None
