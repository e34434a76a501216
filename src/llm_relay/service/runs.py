"""
Run state and the registry that owns it.
"""

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List

from ..errors import NotFoundError


class RunStatus(Enum):
    """Lifecycle of a run: PENDING -> RUNNING -> one terminal status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Run:
    """One execution of a chain against an input."""

    chain_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: RunStatus = RunStatus.PENDING
    start_time: datetime = field(default_factory=_utcnow)
    end_time: datetime | None = None
    progress: float = 0.0
    current_model: str = ""
    total_tokens: int = 0
    checkpoints: list[str] = field(default_factory=list)
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def advance_progress(self, value: float) -> None:
        # Progress never moves backwards
        self.progress = max(self.progress, min(100.0, value))

    def add_tokens(self, count: int) -> None:
        if count > 0:
            self.total_tokens += count

    def finish(self, status: RunStatus, error: str | None = None) -> None:
        self.status = status
        self.end_time = _utcnow()
        if error is not None:
            self.error = error

    def snapshot(self) -> "Run":
        return replace(self, checkpoints=list(self.checkpoints), metadata=dict(self.metadata))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chain_id": self.chain_id,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "progress": self.progress,
            "current_model": self.current_model,
            "total_tokens": self.total_tokens,
            "checkpoints": list(self.checkpoints),
            "error": self.error,
            "metadata": dict(self.metadata),
        }


class RunRegistry:
    """Process-lifetime map of run id to Run.

    Every read returns a copy and every write goes through ``mutate``, so a
    reader never sees a half-applied update. Nothing here blocks on I/O.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._runs: dict[str, Run] = {}
        self._cancel_tokens: dict[str, threading.Event] = {}

    def create(self, run: Run) -> threading.Event:
        """Register ``run`` and return its cancellation token."""
        with self._lock:
            if run.id in self._runs:
                raise ValueError(f"run {run.id} already registered")
            self._runs[run.id] = run.snapshot()
            token = threading.Event()
            self._cancel_tokens[run.id] = token
            return token

    def get(self, run_id: str) -> Run | None:
        with self._lock:
            run = self._runs.get(run_id)
            return run.snapshot() if run is not None else None

    def list(self) -> List[Run]:
        with self._lock:
            return [run.snapshot() for run in self._runs.values()]

    def mutate(self, run_id: str, fn: Callable[[Run], None]) -> Run:
        """Apply ``fn`` to the stored run under the lock and return a copy of the result."""
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise NotFoundError(f"run {run_id} not found")
            fn(run)
            return run.snapshot()

    def cancel_token(self, run_id: str) -> threading.Event:
        with self._lock:
            token = self._cancel_tokens.get(run_id)
            if token is None:
                raise NotFoundError(f"run {run_id} not found")
            return token

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)
