# Re-export the executor and its collaborators
from .service.executor import ChainExecutor
from .service.runs import Run, RunStatus
from .models.chain import Chain, Model, ModelRole
from .models.checkpoint import Checkpoint, CheckpointType
from .routing.router import ProviderRouter
from .utils.chunker import Chunker, SegmentationMethod

# Clients and stores are available from .clients and .storage
