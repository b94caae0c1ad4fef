"""Minimum-interval throttling shared by the collectors and the classifier."""

import time


class RateLimited:
    """
    Mixin that spaces out outbound calls.

    Subclasses set ``min_interval`` (seconds) and ``_last_request_time``
    in their constructor and call ``_rate_limit()`` before each request.
    """

    min_interval: float = 0.0
    _last_request_time: float = 0.0

    def _rate_limit(self):
        """Wait until min_interval has passed since the previous call."""
        if self.min_interval <= 0:
            return
        elapsed = time.time() - self._last_request_time
        if elapsed < self.min_interval:
            time.sleep(self.min_interval - elapsed)
        self._last_request_time = time.time()
