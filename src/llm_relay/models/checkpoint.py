from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid


class CheckpointType(Enum):
    """Kinds of artifacts a run records."""
    INPUT = "input"
    OUTPUT = "output"
    SEGMENT = "segment"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Checkpoint:
    """A write-once artifact produced while running a chain."""

    chain_id: str
    type: CheckpointType
    content: str
    model_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chain_id": self.chain_id,
            "model_id": self.model_id,
            "type": self.type.value,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Checkpoint":
        return cls(
            id=data["id"],
            chain_id=data["chain_id"],
            model_id=data.get("model_id"),
            type=CheckpointType(data["type"]),
            content=data.get("content", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            metadata=data.get("metadata", {}),
        )
