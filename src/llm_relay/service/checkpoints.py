import logging
from typing import Any, List

from ..errors import NotFoundError, PersistenceError
from ..models.chain import Chain, Model
from ..models.checkpoint import Checkpoint, CheckpointType
from ..storage.base import CheckpointStore

logger = logging.getLogger(__name__)


class CheckpointRecorder:
    """Writes the fixed checkpoint types a run emits.

    Store failures come back as PersistenceError. A missing checkpoint is
    reported as NotFoundError.
    """

    def __init__(self, store: CheckpointStore):
        self.store = store

    def _save(self, checkpoint: Checkpoint) -> Checkpoint:
        try:
            self.store.save(checkpoint)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"Failed to save {checkpoint.type.value} checkpoint for chain {checkpoint.chain_id}: {e}")
            raise PersistenceError(f"failed to save {checkpoint.type.value} checkpoint: {e}") from e
        return checkpoint

    def record_input(self, chain: Chain, content: str, metadata: dict[str, Any] | None = None) -> Checkpoint:
        return self._save(Checkpoint(
            chain_id=chain.id,
            type=CheckpointType.INPUT,
            content=content,
            metadata=dict(metadata or {}),
        ))

    def record_output(self, chain: Chain, model: Model, content: str,
                      metadata: dict[str, Any] | None = None) -> Checkpoint:
        return self._save(Checkpoint(
            chain_id=chain.id,
            model_id=model.id,
            type=CheckpointType.OUTPUT,
            content=content,
            metadata=dict(metadata or {}),
        ))

    def record_segment(self, chain: Chain, model: Model, content: str,
                       metadata: dict[str, Any] | None = None) -> Checkpoint:
        return self._save(Checkpoint(
            chain_id=chain.id,
            model_id=model.id,
            type=CheckpointType.SEGMENT,
            content=content,
            metadata=dict(metadata or {}),
        ))

    def record_complete(self, chain: Chain, content: str, metadata: dict[str, Any] | None = None) -> Checkpoint:
        return self._save(Checkpoint(
            chain_id=chain.id,
            type=CheckpointType.COMPLETE,
            content=content,
            metadata=dict(metadata or {}),
        ))

    def load(self, checkpoint_id: str) -> Checkpoint:
        try:
            return self.store.get(checkpoint_id)
        except (NotFoundError, PersistenceError):
            raise
        except Exception as e:
            raise PersistenceError(f"failed to load checkpoint {checkpoint_id}: {e}") from e

    def list_for_chain(self, chain_id: str) -> List[Checkpoint]:
        try:
            return list(self.store.list(chain_id))
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"failed to list checkpoints for chain {chain_id}: {e}") from e
