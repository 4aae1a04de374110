import threading
from typing import Callable

from finbot.logger import get_logger

logger = get_logger(__name__)


class Debouncer:
    """
    Runs `func` once, `delay` seconds after the last call to schedule().

    A new schedule() replaces the pending call and its arguments, so bursts of
    calls collapse into one run with the latest arguments. flush() runs the
    pending call right away, cancel() drops it.
    """

    def __init__(self, delay: float, func: Callable, timer_factory: Callable = threading.Timer):
        self.delay = delay
        self.func = func
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._token = None
        self._pending_args = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self, *args) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending_args = args
            token = self._token = object()
            self._timer = self._timer_factory(self.delay, lambda: self._fire(token))
            self._timer.daemon = True
            self._timer.start()

    def _take_pending(self, token=None):
        with self._lock:
            if self._timer is None or (token is not None and token is not self._token):
                return None
            self._timer.cancel()
            self._timer = None
            args, self._pending_args = self._pending_args, None
            return args

    def _fire(self, token) -> None:
        # A timer replaced while already firing must not run the newer arguments early
        args = self._take_pending(token)
        if args is None:
            return
        try:
            self.func(*args)
        except Exception as e:
            logger.error(f"Debounced call to {self.func} failed: {e}", exc_info=True)

    def flush(self) -> bool:
        """Runs the pending call now. Returns False if nothing was pending."""
        args = self._take_pending()
        if args is None:
            return False
        try:
            self.func(*args)
        except Exception as e:
            logger.error(f"Debounced call to {self.func} failed: {e}", exc_info=True)
        return True

    def cancel(self) -> None:
        self._take_pending()
