"""
Sequencing guard for multi-transaction command sequences.

The engine's transport lock only covers one write/read pair. Sequences that
must not interleave with other callers (discovery, a full poll, a move
followed by its status check) hold the guard for their whole duration.
"""

import logging
import threading
import time
from typing import Optional

from onstep_drivers.utils.exceptions import LockTimeoutError


logger = logging.getLogger(__name__)


class SequencingGuard:
    """
    Busy flag with condition-variable waiting, re-entrant per thread.

    A thread that already holds the guard may acquire it again, so a
    sequence can hold it while each of its queries also takes it. The guard
    becomes free when the outermost holder releases.

    Use as a context manager to guarantee release on every exit path:

        with guard:
            ...
    """

    MIN_WAIT_SLICE = 0.001

    def __init__(self, wait_slice: float = 0.01, max_wait: Optional[float] = None):
        """
        Args:
            wait_slice: Seconds per wait before re-checking the busy flag.
            max_wait: Default bound on acquire(); None waits indefinitely.
        """
        self._cond = threading.Condition()
        self._owner: Optional[int] = None
        self._depth = 0
        self._wait_slice = max(wait_slice, self.MIN_WAIT_SLICE)
        self.max_wait = max_wait

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._depth > 0

    @property
    def wait_slice(self) -> float:
        return self._wait_slice

    def set_timeout(self, timeout_seconds: float) -> None:
        """Wait in slices of one tenth of the active command timeout."""
        self._wait_slice = max(timeout_seconds / 10.0, self.MIN_WAIT_SLICE)

    def acquire(self, max_wait: Optional[float] = None) -> None:
        """
        Wait until the guard is free, then mark it busy.

        Args:
            max_wait: Seconds to wait before giving up. Defaults to the
                guard's max_wait.

        Raises:
            LockTimeoutError: If the guard stayed busy for max_wait seconds.
        """
        me = threading.get_ident()
        limit = self.max_wait if max_wait is None else max_wait
        deadline = None if limit is None else time.monotonic() + limit

        with self._cond:
            if self._owner == me:
                self._depth += 1
                return

            while self._depth > 0:
                wait = self._wait_slice
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise LockTimeoutError(f"Command sequence still busy after {limit:.2f}s")
                    wait = min(wait, remaining)
                self._cond.wait(wait)

            self._owner = me
            self._depth = 1

    def release(self) -> None:
        """
        Drop one level of ownership; free the guard at the outermost level.

        Raises:
            RuntimeError: If the calling thread does not hold the guard.
        """
        with self._cond:
            if self._owner != threading.get_ident():
                raise RuntimeError("Sequencing guard released by a thread that does not hold it")
            self._depth -= 1
            if self._depth == 0:
                self._owner = None
                self._cond.notify_all()

    def __enter__(self) -> "SequencingGuard":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
