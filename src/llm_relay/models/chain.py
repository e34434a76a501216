import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..utils.chunker import SegmentationMethod


class ModelRole(str, Enum):
    """What a step does in the pipeline. Steps without a prompt get the role's default."""
    ANALYZER = "analyzer"
    SUMMARIZER = "summarizer"
    INTEGRATOR = "integrator"
    EXTRACTOR = "extractor"
    ORGANIZER = "organizer"
    EVALUATOR = "evaluator"
    TRANSLATOR = "translator"


GENERAL_PROMPT = "You are a helpful assistant. Answer the request accurately and thoroughly."

DEFAULT_ROLE_PROMPTS = {
    ModelRole.ANALYZER: (
        "You are an analyst. Identify the key themes, concepts and relationships in the text "
        "and present your analysis in a logical structure."
    ),
    ModelRole.SUMMARIZER: "Write a concise summary of the text that keeps all of its key points.",
    ModelRole.INTEGRATOR: (
        "Combine the fragments below into one coherent picture. Resolve contradictions "
        "and remove repetition."
    ),
    ModelRole.EXTRACTOR: "Extract the concrete data, facts, figures and quotes from the text in a structured form.",
    ModelRole.ORGANIZER: "Organize the information into clear categories and a logical hierarchy.",
    ModelRole.EVALUATOR: (
        "Critically evaluate the text: the reliability of its claims, the strength of its "
        "arguments and any signs of bias."
    ),
}


class Model(BaseModel):
    """One chain step: a model name, its system prompt and sampling parameters."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    role: ModelRole | str = ModelRole.ANALYZER
    prompt: str = ""
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    # Longest step input (characters) sent in one call; longer input is segmented.
    context_window: int | None = Field(default=None, gt=0)
    # None uses the executor default
    segmentation: SegmentationMethod | None = None

    @property
    def role_name(self) -> str:
        return self.role.value if isinstance(self.role, ModelRole) else str(self.role)

    def system_prompt(self) -> str:
        """The step's prompt, or the default for its role when none is set."""
        if self.prompt:
            return self.prompt
        try:
            role = ModelRole(self.role_name)
        except ValueError:
            return GENERAL_PROMPT
        return DEFAULT_ROLE_PROMPTS.get(role, GENERAL_PROMPT)


class Chain(BaseModel):
    """An ordered list of models. List order is execution order."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: str = ""
    models: tuple[Model, ...] = ()
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)
