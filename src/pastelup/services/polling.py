"""Cooperative cancellation and retry policies for poll loops."""

import threading
from dataclasses import dataclass
from typing import Callable, Optional

from pastelup.constants import (
    COLLATERAL_POLL_INTERVAL,
    COLLATERAL_ROUND_ATTEMPTS,
    LIVENESS_MAX_ATTEMPTS,
    LIVENESS_POLL_INTERVAL,
    SYNC_POLL_INTERVAL,
)
from pastelup.errors import OperationCancelled


class CancelToken:
    """Shared cancellation signal; every wait in pastelup goes through ``sleep``."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled by user.")

    def sleep(self, seconds: float):
        if self._event.wait(max(0.0, seconds)):
            raise OperationCancelled("Operation cancelled by user.")


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval polling; ``max_attempts=None`` polls until cancelled."""

    interval: float
    max_attempts: Optional[int] = None

    @property
    def bounded(self) -> bool:
        return self.max_attempts is not None

    @property
    def budget_seconds(self) -> Optional[float]:
        if self.max_attempts is None:
            return None
        return self.interval * self.max_attempts

    def poll(self, probe: Callable[[], bool], token: CancelToken) -> bool:
        """Calls ``probe`` until it returns True; False once the budget is spent."""
        attempt = 0
        while self.max_attempts is None or attempt < self.max_attempts:
            token.raise_if_cancelled()
            attempt += 1
            if probe():
                return True
            token.sleep(self.interval)
        return False


LIVENESS_POLICY = RetryPolicy(interval=LIVENESS_POLL_INTERVAL, max_attempts=LIVENESS_MAX_ATTEMPTS)
SYNC_POLICY = RetryPolicy(interval=SYNC_POLL_INTERVAL, max_attempts=None)
COLLATERAL_POLICY = RetryPolicy(interval=COLLATERAL_POLL_INTERVAL, max_attempts=COLLATERAL_ROUND_ATTEMPTS)
