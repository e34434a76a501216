import threading
import time

from ..errors import RunCancelledError, StepTimeoutError


class CallContext:
    """Cancellation signal and deadline for a single provider call.

    The cancel event is the run's token, shared by every call the run makes.
    The deadline is private to this call.
    """

    def __init__(self, cancel_event: threading.Event | None = None, timeout: float | None = None):
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout if timeout else None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self, default: float | None = None) -> float | None:
        """Seconds left before the deadline, or ``default`` when unbounded."""
        if self.deadline is None:
            return default
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise if the call was cancelled or ran out of time."""
        if self.cancelled:
            raise RunCancelledError("run was cancelled")
        if self.expired:
            raise StepTimeoutError(f"provider call exceeded {self.timeout:.1f}s deadline")
