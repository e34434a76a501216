from typing import List, Protocol

from ..models.chain import Chain
from ..models.checkpoint import Checkpoint


class ChainStore(Protocol):
    """Source of chain definitions."""

    def get(self, chain_id: str) -> Chain:
        """Return the chain or raise NotFoundError."""
        ...


class CheckpointStore(Protocol):
    """Write-once checkpoint storage. Must be safe for concurrent use."""

    def save(self, checkpoint: Checkpoint) -> None:
        ...

    def get(self, checkpoint_id: str) -> Checkpoint:
        ...

    def list(self, chain_id: str) -> List[Checkpoint]:
        ...

    def delete(self, checkpoint_id: str) -> None:
        ...
