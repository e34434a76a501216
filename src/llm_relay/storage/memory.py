"""Thread-safe in-process stores.

They keep nothing across restarts and back tests and embedded use.
"""

import threading
from typing import Dict, List

from ..errors import NotFoundError, PersistenceError
from ..models.chain import Chain
from ..models.checkpoint import Checkpoint


class InMemoryChainStore:

    def __init__(self, chains: List[Chain] | None = None):
        self._lock = threading.Lock()
        self._chains: Dict[str, Chain] = {}
        for chain in chains or []:
            self.save(chain)

    def save(self, chain: Chain) -> None:
        with self._lock:
            self._chains[chain.id] = chain

    def get(self, chain_id: str) -> Chain:
        with self._lock:
            chain = self._chains.get(chain_id)
        if chain is None:
            raise NotFoundError(f"chain {chain_id} not found")
        return chain

    def list(self) -> List[Chain]:
        with self._lock:
            return list(self._chains.values())

    def delete(self, chain_id: str) -> None:
        with self._lock:
            if self._chains.pop(chain_id, None) is None:
                raise NotFoundError(f"chain {chain_id} not found")


class InMemoryCheckpointStore:

    def __init__(self):
        self._lock = threading.Lock()
        self._checkpoints: Dict[str, Checkpoint] = {}

    def save(self, checkpoint: Checkpoint) -> None:
        with self._lock:
            if checkpoint.id in self._checkpoints:
                raise PersistenceError(f"checkpoint {checkpoint.id} already exists")
            self._checkpoints[checkpoint.id] = checkpoint

    def get(self, checkpoint_id: str) -> Checkpoint:
        with self._lock:
            checkpoint = self._checkpoints.get(checkpoint_id)
        if checkpoint is None:
            raise NotFoundError(f"checkpoint {checkpoint_id} not found")
        return checkpoint

    def list(self, chain_id: str) -> List[Checkpoint]:
        # Dicts keep insertion order, which is save order
        with self._lock:
            return [cp for cp in self._checkpoints.values() if cp.chain_id == chain_id]

    def delete(self, checkpoint_id: str) -> None:
        with self._lock:
            if self._checkpoints.pop(checkpoint_id, None) is None:
                raise NotFoundError(f"checkpoint {checkpoint_id} not found")
