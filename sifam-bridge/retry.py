"""Retry policy: fixed attempts, linearly growing wait, transport failures only."""

import logging
import time

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from errors import TransportError

logger = logging.getLogger(__name__)


class RetryPolicy:
    """Wrap any callable. After failed attempt i (0-based) wait base_delay * (i + 1)."""

    def __init__(self, attempts: int = 3, base_delay: float = 0.8, sleep=time.sleep):
        self.attempts = max(1, int(attempts))
        self.base_delay = base_delay
        self.sleep = sleep

    def delays(self) -> list[float]:
        return [self.base_delay * (i + 1) for i in range(self.attempts - 1)]

    def _retrying(self) -> Retrying:
        return Retrying(
            reraise=True,
            stop=stop_after_attempt(self.attempts),
            wait=wait_incrementing(start=self.base_delay, increment=self.base_delay),
            retry=retry_if_exception_type(TransportError),
            sleep=self.sleep,
            before_sleep=_log_retry,
        )

    def call(self, fn, *args, **kwargs):
        return self._retrying()(fn, *args, **kwargs)


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retrying %s after attempt %d: %s",
        getattr(retry_state.fn, "__name__", "call"),
        retry_state.attempt_number,
        exc,
    )
