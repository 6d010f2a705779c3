"""
luminous-client - Tasks

Typed descriptions of the units of work the inference service executes,
and the outputs they produce.

Tasks are immutable. The ``with_*`` helpers return modified copies.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from .logprobs import Distribution, Logprobs
from .prompt import Prompt


# ============================================================
# Shared parameters
# ============================================================

@dataclass(frozen=True)
class Stopping:
    """
    Controls when the model stops generating tokens.

    Args:
        maximum_tokens: Upper bound of generated tokens. ``None`` lets the
            model generate until a stop sequence or its context window end.
        stop_sequences: Strings which end generation once they are produced.
    """
    maximum_tokens: Optional[int] = None
    stop_sequences: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Sampling:
    """
    Sampling controls for completions.

    ``complete_with_one_of`` restricts the first generated token to one of
    the given options. It has no equivalent for chat.
    """
    temperature: Optional[float] = None
    top_k: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    complete_with_one_of: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ChatSampling:
    """Sampling controls for chat. Unlike ``Sampling`` it has no ``top_k``."""
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None


MOST_LIKELY = Sampling()


@dataclass(frozen=True)
class Usage:
    """Token counts reported by the service."""
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


# ============================================================
# Completion
# ============================================================

@dataclass(frozen=True)
class TaskCompletion:
    """Continue a prompt."""
    prompt: Prompt
    stopping: Stopping = field(default_factory=Stopping)
    sampling: Sampling = MOST_LIKELY
    logprobs: Logprobs = field(default_factory=Logprobs.none)
    special_tokens: bool = False

    @classmethod
    def from_text(cls, text: str, maximum_tokens: Optional[int] = None) -> TaskCompletion:
        return cls(prompt=Prompt.from_text(text), stopping=Stopping(maximum_tokens=maximum_tokens))

    def with_maximum_tokens(self, maximum_tokens: int) -> TaskCompletion:
        return replace(self, stopping=replace(self.stopping, maximum_tokens=maximum_tokens))

    def with_stop_sequences(self, stop_sequences: Sequence[str]) -> TaskCompletion:
        return replace(self, stopping=replace(self.stopping, stop_sequences=tuple(stop_sequences)))

    def with_sampling(self, sampling: Sampling) -> TaskCompletion:
        return replace(self, sampling=sampling)

    def with_logprobs(self, logprobs: Logprobs) -> TaskCompletion:
        return replace(self, logprobs=logprobs)

    def with_special_tokens(self) -> TaskCompletion:
        """Include special tokens (e.g. ``<|endoftext|>``) in the completion."""
        return replace(self, special_tokens=True)


@dataclass(frozen=True)
class CompletionOutput:
    """The best completion and its meta information."""
    completion: str
    finish_reason: str
    logprobs: Optional[List[Distribution]] = None
    usage: Optional[Usage] = None
    model_version: Optional[str] = None


# ============================================================
# Chat
# ============================================================

@dataclass(frozen=True)
class Message:
    """A chat message."""
    role: str
    content: str

    @classmethod
    def system(cls, content: str) -> Message:
        return cls("system", content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls("user", content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls("assistant", content)

    def to_dict(self):
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class TaskChat:
    """Continue a conversation."""
    messages: Tuple[Message, ...]
    stopping: Stopping = field(default_factory=Stopping)
    sampling: Union[ChatSampling, Sampling] = field(default_factory=ChatSampling)
    logprobs: Logprobs = field(default_factory=Logprobs.none)

    @classmethod
    def with_message(cls, message: Message) -> TaskChat:
        return cls(messages=(message,))

    @classmethod
    def with_messages(cls, messages: Sequence[Message]) -> TaskChat:
        return cls(messages=tuple(messages))

    def push_message(self, message: Message) -> TaskChat:
        return replace(self, messages=self.messages + (message,))

    def with_maximum_tokens(self, maximum_tokens: int) -> TaskChat:
        return replace(self, stopping=replace(self.stopping, maximum_tokens=maximum_tokens))

    def with_sampling(self, sampling: Union[ChatSampling, Sampling]) -> TaskChat:
        return replace(self, sampling=sampling)

    def with_logprobs(self, logprobs: Logprobs) -> TaskChat:
        return replace(self, logprobs=logprobs)


@dataclass(frozen=True)
class ChatOutput:
    message: Message
    finish_reason: str
    logprobs: Optional[List[Distribution]] = None
    usage: Optional[Usage] = None


# ============================================================
# Embeddings
# ============================================================

class SemanticRepresentation(str, Enum):
    """
    Semantic representation to embed a prompt with.

    ``SYMMETRIC`` embeddings compare prompts with each other (clustering,
    classification). ``DOCUMENT`` and ``QUERY`` are used together for search.
    """
    SYMMETRIC = "symmetric"
    DOCUMENT = "document"
    QUERY = "query"


@dataclass(frozen=True)
class TaskSemanticEmbedding:
    """
    Embed a prompt for downstream tasks like search or classification.

    ``compress_to_size=128`` is supported by every embedding model.
    """
    prompt: Prompt
    representation: SemanticRepresentation = SemanticRepresentation.SYMMETRIC
    compress_to_size: Optional[int] = None


@dataclass(frozen=True)
class TaskBatchSemanticEmbedding:
    """Embed several prompts with one request."""
    prompts: Tuple[Prompt, ...]
    representation: SemanticRepresentation = SemanticRepresentation.SYMMETRIC
    compress_to_size: Optional[int] = None


@dataclass(frozen=True)
class TaskInstructableEmbedding:
    """Embed a prompt steered by an instruction (which may be empty)."""
    instruction: str
    prompt: Prompt
    normalize: Optional[bool] = None


@dataclass(frozen=True)
class SemanticEmbeddingOutput:
    embedding: List[float]


@dataclass(frozen=True)
class BatchSemanticEmbeddingOutput:
    embeddings: List[List[float]]


# ============================================================
# Tokenization
# ============================================================

@dataclass(frozen=True)
class TaskTokenization:
    """Turn text into tokens and/or token ids."""
    prompt: str
    tokens: bool = True
    token_ids: bool = True


@dataclass(frozen=True)
class TokenizationOutput:
    tokens: Optional[List[str]] = None
    token_ids: Optional[List[int]] = None


@dataclass(frozen=True)
class TaskDetokenization:
    """Turn token ids back into text."""
    token_ids: Tuple[int, ...]


@dataclass(frozen=True)
class DetokenizationOutput:
    result: str


# ============================================================
# Explanation
# ============================================================

class PromptGranularity(str, Enum):
    """
    Granularity at which prompt parts are scored.

    ``AUTO`` lets the service pick the one that gives roughly 30 explanations.
    """
    AUTO = "auto"
    WORD = "word"
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"


@dataclass(frozen=True)
class TaskExplanation:
    """Score how much each part of the prompt contributed to ``target``."""
    prompt: Prompt
    target: str
    prompt_granularity: PromptGranularity = PromptGranularity.AUTO


@dataclass(frozen=True)
class TextScore:
    start: int
    length: int
    score: float


@dataclass(frozen=True)
class ImageScore:
    left: float
    top: float
    width: float
    height: float
    score: float


@dataclass(frozen=True)
class TextExplanation:
    scores: List[TextScore]


@dataclass(frozen=True)
class ImageExplanation:
    scores: List[ImageScore]


@dataclass(frozen=True)
class TargetExplanation:
    scores: List[TextScore]


ItemExplanation = Union[TextExplanation, ImageExplanation, TargetExplanation]


@dataclass(frozen=True)
class ExplanationOutput:
    items: List[ItemExplanation]


# ============================================================
# Model settings
# ============================================================

@dataclass(frozen=True)
class ModelSettings:
    """Configuration of one model served by the service."""
    name: str
    status: str
    description: str = ""
    chat: bool = False
    completion_type: str = "none"
    embedding_type: str = "none"
    max_context_size: int = 0
    multimodal: bool = False
    aligned: bool = False
    worker_type: Optional[str] = None
    prompt_template: str = ""

    @property
    def available(self) -> bool:
        return self.status == "available"


Task = Union[
    TaskCompletion,
    TaskChat,
    TaskSemanticEmbedding,
    TaskBatchSemanticEmbedding,
    TaskInstructableEmbedding,
    TaskTokenization,
    TaskDetokenization,
    TaskExplanation,
]

Output = Union[
    CompletionOutput,
    ChatOutput,
    SemanticEmbeddingOutput,
    BatchSemanticEmbeddingOutput,
    TokenizationOutput,
    DetokenizationOutput,
    ExplanationOutput,
]
