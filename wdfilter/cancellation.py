import logging
import threading

from wdfilter.errors import PipelineCancelled

logger = logging.getLogger(__name__)

class CancellationToken(object):
    """
    Run-wide cancellation signal. One token is created per run
    and handed to every stage, which checks it between units of work.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.reason = None

    def cancel(self, reason=None):
        """
        Requests cancellation. Only the first reason is kept.
        """
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
        logger.info('Cancelling run: {}'.format(reason))

    @property
    def cancelled(self):
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise PipelineCancelled(self.reason)

    def wait(self, timeout=None):
        """
        Blocks until cancelled or until the timeout expires.
        Returns whether the token is cancelled.
        """
        return self._event.wait(timeout)
