"""
Client-side bookkeeping of the facturation.pro rate limit.

facturation.pro reports the number of requests left in the current
window through the ``X-RateLimit-Remaining`` response header.  The
:class:`RateLimitTracker` remembers the last value seen and restores
the full budget once a whole window has passed without any request,
which approximates the provider's fixed window without querying it.

The tracker never blocks anything; :meth:`RateLimitTracker.can_issue`
is advisory only.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

import requests

logger = logging.getLogger(__name__)

RATE_LIMIT_HEADER = "X-RateLimit-Remaining"
DEFAULT_LIMIT = 600
DEFAULT_WINDOW = 60.0


class RateLimitTracker:
    """Track the remaining request budget reported by the API.

    Parameters
    ----------
    limit : int, optional
        Size of the budget restored at the end of a quiet window.
        Defaults to ``600``.
    window : float, optional
        Length in seconds of the window after which the budget is
        restored.  Defaults to ``60``.
    clock : callable, optional
        Returns the current time in seconds.  Defaults to
        :func:`time.monotonic`.
    timer_factory : callable, optional
        Called as ``timer_factory(interval, function)`` and must return
        an object with ``start()`` and ``cancel()`` methods.  Defaults
        to :class:`threading.Timer`.
    """

    def __init__(
        self,
        *,
        limit: int = DEFAULT_LIMIT,
        window: float = DEFAULT_WINDOW,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: Optional[Callable[[float, Callable[[], None]], Any]] = None,
    ) -> None:
        if limit < 0:
            raise ValueError("limit must not be negative")
        if window <= 0:
            raise ValueError("window must be positive")
        self.limit = limit
        self.window = window
        self._clock = clock
        self._timer_factory = timer_factory or threading.Timer
        self._lock = threading.Lock()
        self._timer: Optional[Any] = None
        self.remaining: int = limit
        self.last_request_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------
    def on_response(self, response: requests.Response, *args: Any, **kwargs: Any) -> None:
        """``requests`` response hook.

        Runs for every response, including error statuses, so the
        counter is up to date before any exception is raised by the
        caller.  Returning ``None`` leaves the response untouched.
        """
        value = response.headers.get(RATE_LIMIT_HEADER)
        with self._lock:
            if value is not None:
                try:
                    self.remaining = int(value)
                except (TypeError, ValueError):
                    logger.debug("Ignoring invalid %s header: %r", RATE_LIMIT_HEADER, value)
                else:
                    logger.debug("Rate limit remaining: %d", self.remaining)
                    if self.remaining <= 0:
                        logger.warning("facturation.pro rate limit exhausted")
            self.last_request_at = self._clock()
        self.arm()

    def consume(self, n: int = 1) -> None:
        """Decrement the budget for requests that bypass the response hook."""
        with self._lock:
            self.remaining -= n

    def reset(self) -> None:
        with self._lock:
            self.remaining = self.limit

    # ------------------------------------------------------------------
    # Window timer
    # ------------------------------------------------------------------
    def arm(self) -> None:
        """Schedule the end-of-window check, replacing any pending one."""
        timer = self._timer_factory(self.window, self._expire)
        # Daemon so a pending check never keeps the interpreter alive.
        if isinstance(timer, threading.Thread):
            timer.daemon = True
        with self._lock:
            previous, self._timer = self._timer, timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def cancel(self) -> None:
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _expire(self) -> None:
        with self._lock:
            last = self.last_request_at
            if last is not None and self._clock() - last < self.window:
                return
            self.remaining = self.limit
        logger.info("Rate limit window elapsed, budget restored to %d", self.limit)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def can_issue(self, n: int = 1) -> bool:
        """Return whether at least ``n`` more requests fit in the budget."""
        return self.remaining >= n
