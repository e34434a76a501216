"""Exception types raised by llm_relay.

Validation and lookup errors surface synchronously to callers. Errors raised
inside a run's background loop are captured into the run's status instead.
"""


class RelayError(RuntimeError):
    """Base class for all llm_relay errors."""


class NotFoundError(RelayError):
    """A chain, run or checkpoint does not exist."""


class InvalidChainError(RelayError):
    """A chain cannot be executed (e.g. it has no models)."""


class InvalidRunStateError(RelayError):
    """An operation is not allowed in the run's current status."""


class ProviderUnavailableError(RelayError):
    """The routing strategy needs a client that is not configured."""


class ProviderError(RelayError):
    """A provider call failed or every routing attempt was exhausted."""


class StepTimeoutError(ProviderError):
    pass


class RunCancelledError(RelayError):
    pass


class PersistenceError(RelayError):
    """Reading or writing a checkpoint failed."""


class NotReadyError(RelayError):
    """Results were requested before the run completed."""


class NoResultError(RelayError):
    """A completed run has no recorded checkpoints."""
