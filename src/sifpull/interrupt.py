"""Termination handling for in-progress pulls.

The guard is installed before the destination file is opened and stays
active for the whole pull. On SIGINT/SIGTERM it removes the destination
file (best-effort), trips the cancellation token and aborts the pull with
:class:`~sifpull.errors.PullInterruptedError` (exit status 1).

Signal handlers only run on the main thread. Code that streams data checks
the :class:`CancelToken` between chunks so a pull running elsewhere still
stops once the guard fires.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from pathlib import Path

from sifpull.errors import PullInterruptedError

logger = logging.getLogger(__name__)

GUARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def remove_quietly(path: str | os.PathLike) -> bool:
    """Remove ``path``, logging instead of raising on failure.

    Returns:
        True if the file was removed by this call.
    """
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Unable to remove %s: %s", path, e)
        return False


class CancelToken:
    """Cooperative cancellation flag shared between the guard and the pull."""

    def __init__(self):
        self._event = threading.Event()
        self.signum: int | None = None

    def cancel(self, signum: int | None = None):
        self.signum = signum
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise PullInterruptedError(self.signum)


class InterruptGuard:
    """Remove the destination file and abort when a termination request arrives.

    Use as a context manager around the whole pull::

        with InterruptGuard(request.destination) as guard:
            pull(request, PullContext(cache=cache, trust_gate=gate, cancel=guard.token))
    """

    def __init__(self, destination: str | os.PathLike, token: CancelToken | None = None,
                 signals: tuple[int, ...] = GUARDED_SIGNALS, keep_existing: bool = False):
        self.destination = Path(destination)
        # A file that was already there and will not be overwritten is not ours to remove.
        self.keep_existing = keep_existing
        self._existed = False
        self.token = token or CancelToken()
        self.signals = signals
        self._previous: dict[int, object] = {}
        self._fired = False

    def __enter__(self) -> InterruptGuard:
        self._existed = self.destination.exists()
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread; relying on cooperative cancellation only")
            return self
        for signum in self.signals:
            self._previous[signum] = signal.signal(signum, self._handle)
        return self

    def __exit__(self, exc_type, exc, tb):
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()
        return False

    def _handle(self, signum, frame):
        self.trigger(signum)

    def trigger(self, signum: int | None = None):
        """Clean up the destination and abort the pull.

        Safe to call more than once; only the first call removes the file.
        Losing a removal race with the pull itself is not an error.
        """
        if not self._fired:
            self._fired = True
            logger.debug("Removing incomplete file because of receiving termination signal")
            if self.keep_existing and self._existed:
                logger.debug("Leaving pre-existing %s in place", self.destination)
            else:
                remove_quietly(self.destination)
            self.token.cancel(signum)
        raise PullInterruptedError(signum)
