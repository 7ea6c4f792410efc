"""
=============================================================================
SHARED METRICS BUFFER
=============================================================================

Holds the most recent metrics payload and mediates access between the
producer threads that replace it and the serving loop that reads it.

=============================================================================
WHY A REFERENCE SWAP IS ENOUGH
=============================================================================

The stored payload is an immutable ``bytes`` object. That gives us two
things for free:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   update(data)                      snapshot()                      │
    │       │                                 │                           │
    │       ├── bytes(data)   (no lock)       │                           │
    │       │                                 │                           │
    │       ├── acquire ─────────────────────────── acquire (waits)       │
    │       │     self._data = new                  │                     │
    │       ├── release                             │                     │
    │       │                                 ├──── data = self._data     │
    │       │                                 ├──── release               │
    │       │                                 │                           │
    │       │                                 └──── sendall(data)         │
    │       │                                       (lock NOT held)       │
    └─────────────────────────────────────────────────────────────────────┘

1. The copy out of the caller's (possibly mutable) object happens before
   the lock is taken, so the critical section is a single assignment.
2. A reader holding an old reference keeps a complete, unchanging payload
   even if an update lands while it is still writing to a slow client.
   Nobody can observe a half-written buffer.

=============================================================================
LOCK POISONING
=============================================================================

If code raises while holding the lock, we can no longer vouch for the
buffer. The guard marks the buffer as poisoned and every later access
raises PoisonedLockError instead of serving possibly-bad data.

    NORMAL ──── exception inside guard ────► POISONED (permanent)

=============================================================================
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator


logger = logging.getLogger(__name__)


class PoisonedLockError(RuntimeError):
    """
    Raised when the buffer lock was released abnormally.

    This is not meant to be recovered from: the contents are suspect and
    the process should stop treating the metrics as valid.
    """


class SharedBuffer:
    """
    A lock-protected byte buffer holding the latest metrics snapshot.

    Thread-safe: any number of threads may call update() and snapshot()
    concurrently. Updates are totally ordered by lock acquisition, and a
    snapshot taken after update() returns sees that payload or a newer one.

    Usage:
        buf = SharedBuffer()
        buf.update(b"requests_total 42\\n")   # -> 20
        buf.snapshot()                        # -> b"requests_total 42\\n"
    """

    def __init__(self):
        # Empty bytes is a shared singleton, nothing is allocated here
        self._data = b""
        self._lock = threading.Lock()
        self._poisoned = False

    @property
    def poisoned(self) -> bool:
        """Whether a previous holder raised while holding the lock."""
        return self._poisoned

    @contextmanager
    def _guard(self) -> Iterator[None]:
        """
        Hold the lock for one critical section.

        Raises:
            PoisonedLockError: If an earlier critical section failed.
        """
        with self._lock:
            if self._poisoned:
                raise PoisonedLockError("metrics buffer lock is poisoned")
            try:
                yield
            except BaseException:
                self._poisoned = True
                logger.critical("Metrics buffer poisoned by a failing lock holder")
                raise

    def update(self, data) -> int:
        """
        Replace the stored payload and return its length in bytes.

        The old payload is discarded, never merged.

        Args:
            data: A bytes-like object, or an iterable of ints in range(256).

        Returns:
            Number of bytes now stored.

        Raises:
            TypeError: If data is a str or otherwise not convertible to bytes.
            ValueError: If an int in data is outside range(256).
            PoisonedLockError: If the lock has been poisoned.
        """
        if isinstance(data, str):
            raise TypeError("metrics payload must be bytes, not str; encode it first")
        if isinstance(data, int):
            # bytes(n) would silently build n zero bytes
            raise TypeError("metrics payload must be bytes, not int")

        # Copy before locking so the critical section is just a swap
        payload = bytes(data)

        with self._guard():
            self._data = payload
            return len(payload)

    def snapshot(self) -> bytes:
        """
        Return the current payload.

        Raises:
            PoisonedLockError: If the lock has been poisoned.
        """
        with self._guard():
            return self._data

    def __len__(self) -> int:
        return len(self.snapshot())
