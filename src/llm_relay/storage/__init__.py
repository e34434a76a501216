from .base import ChainStore, CheckpointStore
from .memory import InMemoryChainStore, InMemoryCheckpointStore

__all__ = ['ChainStore', 'CheckpointStore', 'InMemoryChainStore', 'InMemoryCheckpointStore']
