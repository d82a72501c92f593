import threading
from typing import List, Optional


class OperationCancelled(Exception):
    """The operator aborted the operation, or it was interrupted by a signal"""

    def __init__(self, message: str = "operation cancelled", rollback_warnings: Optional[List] = None):
        super().__init__(message)
        self.rollback_warnings = list(rollback_warnings or [])


class CancellationToken:
    """
    Flag shared by everything running for one invocation.
    Polled between steps; setting it never interrupts a call already in flight.
    """

    def __init__(self):
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()
